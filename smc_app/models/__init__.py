"""
Record types for detector output and analysis results.

Every record is a frozen dataclass with ``to_dict`` / ``from_dict`` so an
analysis snapshot can be stored as JSON and rebuilt without loss.
"""
