from . import bulk, events, freelancers, onboarding, platforms, system

__all__ = ["bulk", "events", "freelancers", "onboarding", "platforms", "system"]
