"""
Initialize the OTP database tables
Run this script once to set up the database
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from onboarding.config import settings
from onboarding.database import create_db_engine, init_models


def init_database():
    """Create tables"""

    print("=" * 60)
    print(f"{settings.APP_NAME} - Database Initialization")
    print("=" * 60)

    engine = create_db_engine(settings.DATABASE_URL)
    print("\n📦 Creating database tables...")
    try:
        init_models(engine)
        print("✅ Database tables created successfully!")
    except Exception as e:
        print(f"❌ Error creating tables: {str(e)}")
        sys.exit(1)
    finally:
        engine.dispose()


if __name__ == "__main__":
    init_database()
