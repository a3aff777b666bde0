"""
Component Repository gateways.

The engine only needs nearest-neighbour retrieval of a user's components
(``similarity_search``) and, for seniority analysis, the full list
(``list_components``). Two adapters ship with the package: an in-memory store
ranked with numpy and a MongoDB Atlas store queried with ``$vectorSearch``.
"""
import os
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Protocol

import motor.motor_asyncio
import numpy as np
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError

from cvtailor.models.models import Component, JobDescriptionDecomposition
from cvtailor.utils.exceptions import RepositoryError
from cvtailor.utils.logging_config import get_logger

logger = get_logger(__name__)

load_dotenv()


class ComponentRepository(Protocol):
    async def similarity_search(self, user_id: str, vector: List[float], top_k: int) -> List[Component]: ...

    async def list_components(self, user_id: str) -> List[Component]: ...


class JobDescriptionDecomposer(Protocol):
    async def extract(self, text: str) -> JobDescriptionDecomposition: ...


class InMemoryComponentRepository:
    """Component store held in memory; searches rank by cosine similarity."""

    def __init__(self, components_by_user: Dict[str, List[Component]] = None):
        self._store: Dict[str, List[Component]] = {}
        for user_id, components in (components_by_user or {}).items():
            for component in components:
                self.add(user_id, component)

    def add(self, user_id: str, component: Component) -> None:
        if component.embedding is None:
            raise RepositoryError(
                f"Component '{component.title}' has no embedding", operation="add"
            )
        self._store.setdefault(user_id, []).append(component)

    async def list_components(self, user_id: str) -> List[Component]:
        return [c.model_copy(deep=True) for c in self._store.get(user_id, [])]

    async def similarity_search(self, user_id: str, vector: List[float], top_k: int) -> List[Component]:
        components = self._store.get(user_id, [])
        if not components or top_k < 1:
            return []

        query = np.asarray(vector, dtype=np.float64)
        scored = []
        for component in components:
            emb = np.asarray(component.embedding, dtype=np.float64)
            if emb.shape != query.shape:
                raise RepositoryError(
                    "Query vector dimension does not match stored embeddings",
                    operation="similarity_search",
                    details={"query_dimension": int(query.shape[0]), "stored_dimension": int(emb.shape[0])},
                )
            den = float(np.linalg.norm(query) * np.linalg.norm(emb)) or 1e-8
            scored.append((float(np.dot(query, emb)) / den, component))

        # stable sort keeps insertion order among equal scores
        scored.sort(key=lambda pair: pair[0], reverse=True)
        out = []
        for sim, component in scored[:top_k]:
            hit = component.model_copy(deep=True)
            hit.similarity = max(-1.0, min(1.0, sim))
            out.append(hit)
        return out


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    return value


class MongoComponentRepository:
    """Components stored in MongoDB Atlas with a vector index on ``embedding``."""

    def __init__(self, collection, index_name: str = "components_embedding_index",
                 num_candidates_factor: int = 10):
        self.collection = collection
        self.index_name = index_name
        self.num_candidates_factor = num_candidates_factor

    @classmethod
    def from_env(cls) -> "MongoComponentRepository":
        mongo_details = os.getenv("MONGO_DETAILS", "mongodb://localhost:27017")
        db_name = os.getenv("DB_NAME", "cvtailor")
        logger.info(f"Initializing MongoDB component repository on database: {db_name}")
        client = motor.motor_asyncio.AsyncIOMotorClient(mongo_details)
        return cls(
            client[db_name]["components"],
            index_name=os.getenv("COMPONENTS_VECTOR_INDEX", "components_embedding_index"),
        )

    @staticmethod
    def _to_component(doc: Dict[str, Any]) -> Component:
        doc = dict(doc)
        if "_id" in doc:
            doc.setdefault("id", str(doc.pop("_id")))
        doc.pop("user_id", None)
        doc["start_date"] = _as_date(doc.get("start_date"))
        doc["end_date"] = _as_date(doc.get("end_date"))
        return Component(**doc)

    def _to_components(self, docs: List[Dict[str, Any]], operation: str) -> List[Component]:
        try:
            return [self._to_component(d) for d in docs]
        except PydanticValidationError as e:
            raise RepositoryError(
                f"Malformed component document: {e}", operation=operation,
                collection=self.collection.name, cause=e,
            ) from e

    async def list_components(self, user_id: str) -> List[Component]:
        try:
            docs = await self.collection.find({"user_id": user_id}).sort("created_at", -1).to_list(length=None)
        except PyMongoError as e:
            raise RepositoryError(
                f"Failed to load components: {e}", operation="list_components",
                collection=self.collection.name, details={"user_id": user_id}, cause=e,
            ) from e
        return self._to_components(docs, "list_components")

    async def similarity_search(self, user_id: str, vector: List[float], top_k: int) -> List[Component]:
        pipeline = [
            {
                "$vectorSearch": {
                    "index": self.index_name,
                    "path": "embedding",
                    "queryVector": list(vector),
                    "numCandidates": max(top_k * self.num_candidates_factor, 100),
                    "limit": top_k,
                    "filter": {"user_id": user_id},
                }
            },
            {"$addFields": {"similarity": {"$meta": "vectorSearchScore"}}},
        ]
        try:
            docs = await self.collection.aggregate(pipeline).to_list(length=top_k)
        except PyMongoError as e:
            raise RepositoryError(
                f"Vector search failed: {e}", operation="similarity_search",
                collection=self.collection.name, details={"user_id": user_id, "top_k": top_k}, cause=e,
            ) from e

        for doc in docs:
            # Atlas reports cosine scores as (1 + cos) / 2
            if doc.get("similarity") is not None:
                doc["similarity"] = 2.0 * float(doc["similarity"]) - 1.0
        logger.debug(f"Vector search returned {len(docs)} components for user {user_id}")
        return self._to_components(docs, "similarity_search")
