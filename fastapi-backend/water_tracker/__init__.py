"""Water Complaint System backend: complaint store, lifecycle and tracking API."""
