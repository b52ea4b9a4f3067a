"""
Occurrence Annotation Rules API.

Lets users propose annotation rules that flag occurrence records
(native, introduced, vagrant, ...) for a taxon, dataset, time span,
record type and area, and lets the community vote on them.

The service allows users to:
- Create, update and logically delete rules, optionally inside a project
- Support or contest rules proposed by others
- Search rules by any combination of scope, record type, year range,
  geometry, author, voter and comment text
- Retrieve aggregate metrics over rules and projects
"""

__version__ = "0.1.0"
