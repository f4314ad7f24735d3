"""Serverless entry point."""
from mangum import Mangum

from atom_assistant.main import app

# ASGI handler for serverless deployment (AWS Lambda / Vercel)
handler = Mangum(app, lifespan="auto")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
