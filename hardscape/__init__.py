"""AI hardscape designer worker: image variations and walkthrough videos."""
