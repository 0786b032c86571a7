"""
RUN SCRIPT - Start the EgyptoAI server
======================================

PURPOSE:
  Single entry point to start the backend.

WHAT IT DOES:
  - Imports the FastAPI app from egypto.main.
  - Runs it with uvicorn on host 0.0.0.0 and port 8000.
  - reload=True restarts the server when Python files change (development).

USAGE:
  python run.py

  API docs: http://localhost:8000/docs

NOTE:
  Before running, set GEMINI_API_KEY / DEEPSEEK_API_KEY / GROQ_API_KEY and
  JWT_SECRET in .env.
"""

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "egypto.main:app",   # String path to the FastAPI app instance (module:variable).
        host="0.0.0.0",      # Listen on all network interfaces.
        port=8000,
        reload=True
    )
