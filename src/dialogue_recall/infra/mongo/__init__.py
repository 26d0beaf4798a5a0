"""MongoDB storage for dialogue_recall."""

from dialogue_recall.infra.mongo.client import MongoClient
from dialogue_recall.infra.mongo.repositories import MongoSessionRepository

__all__ = ["MongoClient", "MongoSessionRepository"]
