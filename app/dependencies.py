"""
FastAPI dependencies: actor resolution and per-request service wiring
"""
import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.schemas.actor import Actor
from app.services.attempt_service import AttemptService
from app.services.question_bank import QuestionBankAccessor
from app.utils.cache import CacheService, get_cache_service

logger = logging.getLogger(__name__)

bearer = HTTPBearer()


def get_current_actor(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> Actor:
    """Decode the identity provider's token into an Actor"""
    try:
        payload = jwt.decode(creds.credentials, settings.AUTH_SECRET, algorithms=["HS256"])
        return Actor(user_id=payload["sub"], role=payload.get("role"))
    except (jwt.PyJWTError, KeyError, ValidationError) as e:
        logger.info(f"Rejected bearer token: {str(e)}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")


def get_question_bank(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache_service)
) -> QuestionBankAccessor:
    return QuestionBankAccessor(db, cache)


def get_attempt_service(
    db: Session = Depends(get_db),
    question_bank: QuestionBankAccessor = Depends(get_question_bank)
) -> AttemptService:
    return AttemptService(db, question_bank)
