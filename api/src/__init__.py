"""FastAPI service for the Pixelyze image transformation app.

This package provides page data, image management and account credit
endpoints backed by MongoDB, Cloudinary search and Clerk sessions.
"""

__version__ = "0.1.0"
