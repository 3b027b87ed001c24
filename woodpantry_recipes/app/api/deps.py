from fastapi import Depends, Request
from sqlalchemy.orm import Session

from woodpantry_recipes.app.db.session import get_db
from woodpantry_recipes.app.services.ingestion_service import IngestionService


def get_db_session(db: Session = Depends(get_db)) -> Session:
    return db


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service
