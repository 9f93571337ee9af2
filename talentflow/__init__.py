"""
Talentflow: staged candidate enrichment.

This package pushes a list of candidate profiles through an ordered
funnel of enrichment-and-filter stages.  Each stage calls one or more
remote collaborators (web search, people enrichment, Google Scholar,
Google Patents, GitHub and a text-generation model), extracts
structured facts from the responses and drops candidates that fail the
user's criteria.

The high-level flow is:

1. **search** – Build a web-search query from the criteria and turn
   the hits into ``Candidate`` records keyed by profile username.
2. **pipeline** – The funnel controller runs every stage through the
   batch scheduler (bounded concurrency, inter-batch pacing and a
   per-item timeout) and shrinks the candidate set after each filter.
3. **enrich** – The stage implementations: profile, education,
   publications, patents, GitHub and experience.
4. **lookup** – Adapters for every remote collaborator.  All of them
   go through the shared disk cache in **cache** before touching the
   network and classify failures into the types in ``errors``.
5. **cli** – Command line entry point wiring together the above.
"""

__version__ = "0.1.0"
