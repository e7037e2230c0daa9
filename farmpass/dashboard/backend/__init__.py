"""FarmPass Dashboard Backend - FastAPI application and routes."""
