"""End-to-end scenario tests for pubsub-lite.

Each scenario drives a Publisher or Consumer over the in-process fake
transport and checks one observable behavior end to end.
"""
