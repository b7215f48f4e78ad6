"""
Map helpers.

Responsibilities:
- Serve the map provider API key configured for the deployment.
- Pull coordinates out of pasted Google Maps links.
- Great-circle distance between two coordinates, and display formatting.
"""
