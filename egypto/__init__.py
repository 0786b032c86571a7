"""
EGYPTOAI APPLICATION PACKAGE
============================

Main Python package for the EgyptoAI travel-chatbot backend.

FILE STRUCTURE:
  egypto/
    __init__.py   - This file; marks 'egypto' as a package.
    main.py       - FastAPI app, lifespan (composition root) and all HTTP endpoints.
    models.py     - Pydantic models for requests, responses and stored records.
    errors.py     - Error taxonomy shared by services and the HTTP layer.
    auth.py       - Bearer-token identity (who is calling, if anyone).
    services/     - Providers, stream broker, SSE transport, chat store, coordinator.
    utils/        - Small helpers (background tasks, text cleanup).
"""
