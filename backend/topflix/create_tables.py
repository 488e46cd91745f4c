from topflix.db import Base, get_engine
# Import every model so the metadata is complete
from topflix.models import Content, AppearanceHistory  # noqa: F401

def main():
    """Create all database tables"""
    Base.metadata.create_all(bind=get_engine())
    print("All tables created successfully.")

if __name__ == "__main__":
    main()
