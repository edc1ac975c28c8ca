from deployhub.db.models import Base
from deployhub.db.database import engine, SessionLocal, get_db, transaction

# Import the comprehensive initialization function
from deployhub.db.init_db import init_database

# Create database and tables if they don't exist
def init_db():
    """Initialize the database - create both the database and tables if needed."""
    init_database()
