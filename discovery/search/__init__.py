"""
Search and listing engine.

Responsibilities:
- Normalize loosely-typed backend records into a single Entity shape.
- Filter entities by rating, opening hours, distance, price and badges.
- Sort filtered entities by a closed set of sort options.
- Run the fetch -> format -> filter -> sort pipeline for the API.
"""
