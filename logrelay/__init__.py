"""
slack-log-relay: structured logging client (`logv2`) and a Pub/Sub -> Slack alert relay.
"""

__version__ = "0.1.0"
