"""
Order bridge between SQS and Kafka.

Receives order messages from one transport, transforms them into canonical
records and forwards them to the other. Messages that fail transformation are
retried through a Kafka retry topic with exponential backoff and end up in a
dead-letter topic once their attempts are exhausted.
"""

from core import __version__

__all__ = ["__version__"]
