"""Transport adapters for pubsub-lite.

- base.py: TopicHandle and SubscriptionHandle protocols
- gcp.py: Google Cloud Pub/Sub (import ``pubsub_lite.adapters.gcp`` directly)
"""

from pubsub_lite.adapters.base import SubscriptionHandle, TopicHandle

__all__ = ["SubscriptionHandle", "TopicHandle"]
