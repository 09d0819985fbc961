#!/usr/bin/env python3
"""
Kafka integration for pqstream.

Provides:
- SubscriptionStream: read raw records from every partition of a topic
- TopicPublisher: write serialized records to a topic
"""

from .source import SubscriptionStream, SubscriptionConfig
from .sink import TopicPublisher, TopicPublisherConfig

__all__ = [
    'SubscriptionStream',
    'SubscriptionConfig',
    'TopicPublisher',
    'TopicPublisherConfig',
]
