"""Describes the Kyabanana domain. Centres around "what should I cook right now".

Why is this thin?

- Recipes are seeded once and only ever read.
- Picking one is a filter on two text fields plus the clock.
- The assistant is a language model behind an api.
- The only write is the onboarding preferences document.

The external services (document store, completion api, identity provider)
sit behind small protocols so they can be faked.
"""
