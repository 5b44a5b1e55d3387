"""
Pydantic schemas for API request and response validation, and for the
quick-entry core's data records (queued mutations, inference results).
"""
