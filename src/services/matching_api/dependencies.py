# src/services/matching_api/dependencies.py
from fastapi import Request

from src.core.engine import Engine


def get_engine(request: Request) -> Engine:
    return request.app.state.engine
