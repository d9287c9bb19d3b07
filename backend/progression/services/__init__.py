"""
Services Layer

Engine logic for bracket progression and map veto:
- Pure calculators accept plain values or record objects and return dataclasses
- Persistence-aware services take a Session and commit their own writes
- Neither depends on HTTP request/response objects
"""
