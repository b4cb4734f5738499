"""
Site data cache: persistent TTL cache and fetch orchestration for the
data a static site pulls from source control, its blog, status monitoring,
AI summaries and SEO metadata.
"""
__version__ = "0.1.0"
