import uvicorn
from deployhub.config import settings
from deployhub.db import init_db

if __name__ == "__main__":
    # Make sure the database and tables exist
    init_db()

    # Start the API server
    print(f"Starting API server on {settings.API_HOST}:{settings.API_PORT}...")
    uvicorn.run(
        "deployhub.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD
    )
