"""HTTP API exposing requests, notifications, check-ins and reports."""
