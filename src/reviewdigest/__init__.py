"""Review Digest - daily merge request digests and a code relay bot.

This package provides a scheduled job that posts the open GitLab merge
requests of a project to a Slack channel, ordered by age and marked by
staleness, plus a small chat bot relaying code to the Go playground.
"""

__version__ = "0.1.0"
