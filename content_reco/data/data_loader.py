from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from pymongo import ASCENDING, DESCENDING, MongoClient
from sshtunnel import SSHTunnelForwarder

from .. import config
from ..models.data_models import (
    ContentItem,
    ContentVector,
    InteractionKind,
    InteractionRecord,
    ReadingPatterns,
    VisitorProfile,
)

logger = logging.getLogger(__name__)

# 전역 SSH 터널 (싱글톤 패턴으로 관리)
_ssh_tunnel: Optional[SSHTunnelForwarder] = None


def get_ssh_tunnel() -> SSHTunnelForwarder:
    """SSH 터널을 싱글톤으로 가져오거나 생성합니다."""
    import paramiko

    global _ssh_tunnel
    if _ssh_tunnel is None or not _ssh_tunnel.is_active:
        pkey = paramiko.RSAKey.from_private_key_file(str(config.MONGO_SSH_PEM_PATH))

        _ssh_tunnel = SSHTunnelForwarder(
            (config.MONGO_SSH_HOST, config.MONGO_SSH_PORT),
            ssh_username=config.MONGO_SSH_USER,
            ssh_pkey=pkey,
            remote_bind_address=(config.MONGO_HOST, config.MONGO_PORT),
            local_bind_address=("127.0.0.1", 0),  # 사용 가능한 포트 자동 할당
            allow_agent=False,
            host_pkey_directories=[],
        )
        _ssh_tunnel.start()
        logger.info(f"[MongoDataLoader] SSH tunnel opened on port {_ssh_tunnel.local_bind_port}")
    return _ssh_tunnel


def _build_client() -> MongoClient:
    timeouts = dict(
        serverSelectionTimeoutMS=30000,
        connectTimeoutMS=30000,
        socketTimeoutMS=30000,
    )
    if config.MONGO_URI:
        return MongoClient(config.MONGO_URI, **timeouts)

    host, port = config.MONGO_HOST, config.MONGO_PORT
    if config.MONGO_SSH_HOST:
        tunnel = get_ssh_tunnel()
        host, port = "127.0.0.1", tunnel.local_bind_port

    if config.MONGO_USER:
        uri = (
            f"mongodb://{config.MONGO_USER}:{config.MONGO_PASSWORD}"
            f"@{host}:{port}/?authSource={config.MONGO_AUTH_SOURCE}&directConnection=true"
        )
    else:
        uri = f"mongodb://{host}:{port}/?directConnection=true"
    return MongoClient(uri, **timeouts)


def _int_keys(mapping: Optional[Dict[Any, Any]]) -> Dict[int, float]:
    return {int(k): float(v) for k, v in (mapping or {}).items()}


def _str_keys(mapping: Dict[int, float]) -> Dict[str, float]:
    # MongoDB 문서 키는 문자열이어야 함
    return {str(k): float(v) for k, v in mapping.items()}


class MongoDataLoader:
    """
    MongoDB 기반 카탈로그 조회 + 벡터/프로필 저장 + 상호작용 로그 기록 클래스
    """

    def __init__(self, client: Optional[MongoClient] = None, db_name: str = None):
        if client is None:
            client = _build_client()

        self.client = client
        self.db = self.client[db_name or config.MONGO_DB]

        # Collections
        self.col_posts = self.db["posts"]
        self.col_vectors = self.db["content_vectors"]
        self.col_profiles = self.db["visitor_profiles"]
        self.col_interactions = self.db["interaction_logs"]

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except Exception as e:
            logger.warning(f"[MongoDataLoader] ping failed: {e}")
            return False

    def ensure_indexes(self) -> None:
        self.col_posts.create_index([("status", ASCENDING), ("published_at", DESCENDING)])
        self.col_interactions.create_index([("profile_key", ASCENDING), ("created_at", DESCENDING)])
        self.col_interactions.create_index([("item_id", ASCENDING), ("created_at", DESCENDING)])
        self.col_interactions.create_index([("interaction_type", ASCENDING), ("created_at", DESCENDING)])
        self.col_profiles.create_index([("updated_at", ASCENDING)])

    # ------------------------------------------------------
    # Document ↔ dataclass 변환
    # ------------------------------------------------------
    @staticmethod
    def _parse_datetime(value: Any) -> Optional[datetime]:
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                return None
        return None

    @staticmethod
    def _doc_to_item(doc: Dict[str, Any]) -> ContentItem:
        return ContentItem(
            item_id=int(doc["_id"]),
            title=doc.get("title"),
            excerpt=doc.get("excerpt"),
            body=doc.get("body"),
            category_ids=[int(c) for c in doc.get("category_ids") or []],
            tag_ids=[int(t) for t in doc.get("tag_ids") or []],
            published_at=MongoDataLoader._parse_datetime(doc.get("published_at")),
            status=doc.get("status") or "draft",
            author_id=doc.get("author_id"),
            views_count=int(doc.get("views_count") or 0),
            likes_count=int(doc.get("likes_count") or 0),
            comments_count=int(doc.get("comments_count") or 0),
            bookmarks_count=int(doc.get("bookmarks_count") or 0),
        )

    @staticmethod
    def _item_to_doc(item: ContentItem) -> Dict[str, Any]:
        return {
            "_id": item.item_id,
            "title": item.title,
            "excerpt": item.excerpt,
            "body": item.body,
            "category_ids": list(item.category_ids),
            "tag_ids": list(item.tag_ids),
            "published_at": item.published_at,
            "status": item.status,
            "author_id": item.author_id,
            "views_count": item.views_count,
            "likes_count": item.likes_count,
            "comments_count": item.comments_count,
            "bookmarks_count": item.bookmarks_count,
        }

    @staticmethod
    def _doc_to_vector(doc: Dict[str, Any]) -> ContentVector:
        return ContentVector(
            item_id=int(doc["_id"]),
            content_vector=[float(x) for x in doc.get("content_vector") or []],
            category_vector=[float(x) for x in doc.get("category_vector") or []],
            tag_vector=[float(x) for x in doc.get("tag_vector") or []],
            length_normalized=float(doc.get("length_normalized") or 0.0),
            readability_score=float(doc.get("readability_score") or 0.0),
            engagement_score=float(doc.get("engagement_score") or 0.0),
            computed_at=MongoDataLoader._parse_datetime(doc.get("computed_at")),
            model_version=doc.get("model_version") or "",
            vocabulary_version=int(doc.get("vocabulary_version") or 0),
            analyzer=doc.get("analyzer") or "basic",
        )

    @staticmethod
    def _doc_to_profile(doc: Dict[str, Any]) -> VisitorProfile:
        patterns = doc.get("reading_patterns") or {}
        return VisitorProfile(
            profile_key=doc["_id"],
            account_id=doc.get("account_id"),
            session_id=doc.get("session_id"),
            category_preferences=_int_keys(doc.get("category_preferences")),
            tag_interests=_int_keys(doc.get("tag_interests")),
            reading_patterns=ReadingPatterns(
                preferred_hours=_int_keys(patterns.get("preferred_hours")),
                preferred_days=_int_keys(patterns.get("preferred_days")),
                avg_session_duration=float(patterns.get("avg_session_duration") or 0.0),
                reading_speed=patterns.get("reading_speed") or "medium",
                avg_scroll_depth=float(patterns.get("avg_scroll_depth") or 0.0),
            ),
            preferred_length=doc.get("preferred_length") or "medium",
            avg_reading_time=float(doc.get("avg_reading_time") or 0.0),
            engagement_rate=float(doc.get("engagement_rate") or 0.0),
            total_items_consumed=int(doc.get("total_items_consumed") or 0),
            interactions_observed=int(doc.get("interactions_observed") or 0),
            return_rate=float(doc.get("return_rate") or 0.0),
            cluster_id=int(doc.get("cluster_id", 4)),
            cluster_confidence=float(doc.get("cluster_confidence", 0.3)),
            last_activity=MongoDataLoader._parse_datetime(doc.get("last_activity")),
            updated_at=MongoDataLoader._parse_datetime(doc.get("updated_at")),
            model_version=doc.get("model_version") or "",
        )

    @staticmethod
    def _profile_to_doc(profile: VisitorProfile) -> Dict[str, Any]:
        rp = profile.reading_patterns
        return {
            "_id": profile.profile_key,
            "account_id": profile.account_id,
            "session_id": profile.session_id,
            "category_preferences": _str_keys(profile.category_preferences),
            "tag_interests": _str_keys(profile.tag_interests),
            "reading_patterns": {
                "preferred_hours": _str_keys(rp.preferred_hours),
                "preferred_days": _str_keys(rp.preferred_days),
                "avg_session_duration": rp.avg_session_duration,
                "reading_speed": rp.reading_speed,
                "avg_scroll_depth": rp.avg_scroll_depth,
            },
            "preferred_length": profile.preferred_length,
            "avg_reading_time": profile.avg_reading_time,
            "engagement_rate": profile.engagement_rate,
            "total_items_consumed": profile.total_items_consumed,
            "interactions_observed": profile.interactions_observed,
            "return_rate": profile.return_rate,
            "cluster_id": profile.cluster_id,
            "cluster_confidence": profile.cluster_confidence,
            "last_activity": profile.last_activity,
            "updated_at": profile.updated_at,
            "model_version": profile.model_version,
        }

    @staticmethod
    def _doc_to_interaction(doc: Dict[str, Any]) -> InteractionRecord:
        return InteractionRecord(
            interaction_id=doc.get("interaction_id") or str(doc.get("_id")),
            account_id=doc.get("account_id"),
            session_id=doc.get("session_id"),
            item_id=int(doc["item_id"]),
            kind=InteractionKind(doc["interaction_type"]),
            time_spent_seconds=float(doc.get("time_spent_seconds") or 0.0),
            scroll_percentage=float(doc.get("scroll_percentage") or 0.0),
            completed_reading=bool(doc.get("completed_reading")),
            recommendation_source=doc.get("recommendation_source"),
            recommendation_position=doc.get("recommendation_position"),
            recommendation_score=doc.get("recommendation_score"),
            recommendation_context=doc.get("recommendation_context"),
            impression=bool(doc.get("impression")),
            anomaly=doc.get("anomaly"),
            engagement_score=float(doc.get("engagement_score") or 0.0),
            implicit_rating=float(doc.get("implicit_rating") or 0.0),
            created_at=MongoDataLoader._parse_datetime(doc.get("created_at")),
        )

    @staticmethod
    def _interaction_to_doc(record: InteractionRecord) -> Dict[str, Any]:
        interaction_id = record.interaction_id or str(uuid4())
        return {
            "_id": interaction_id,
            "interaction_id": interaction_id,
            "profile_key": record.profile_key,
            "account_id": record.account_id,
            "session_id": record.session_id,
            "item_id": record.item_id,
            "interaction_type": record.kind.value,
            "time_spent_seconds": record.time_spent_seconds,
            "scroll_percentage": record.scroll_percentage,
            "completed_reading": record.completed_reading,
            "recommendation_source": record.recommendation_source,
            "recommendation_position": record.recommendation_position,
            "recommendation_score": record.recommendation_score,
            "recommendation_context": record.recommendation_context,
            "impression": record.impression,
            "anomaly": record.anomaly,
            "engagement_score": record.engagement_score,
            "implicit_rating": record.implicit_rating,
            "created_at": record.created_at or datetime.utcnow(),
        }

    # ------------------------------------------------------
    # 카탈로그 조회
    # ------------------------------------------------------
    def upsert_items(self, items: Iterable[ContentItem]) -> None:
        for it in items:
            self.col_posts.replace_one({"_id": it.item_id}, self._item_to_doc(it), upsert=True)

    def get_item(self, item_id: int) -> Optional[ContentItem]:
        doc = self.col_posts.find_one({"_id": item_id})
        return self._doc_to_item(doc) if doc else None

    def get_items(self, item_ids: Iterable[int]) -> Dict[int, ContentItem]:
        cursor = self.col_posts.find({"_id": {"$in": list(item_ids)}})
        items = [self._doc_to_item(d) for d in cursor]
        return {it.item_id: it for it in items}

    def get_published_items(
        self,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
        exclude_id: Optional[int] = None,
    ) -> List[ContentItem]:
        query: Dict[str, Any] = {"status": "published"}
        if now is not None:
            query["published_at"] = {"$lte": now}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}

        cursor = self.col_posts.find(query).sort([("published_at", DESCENDING), ("_id", DESCENDING)])
        if limit is not None:
            cursor = cursor.limit(int(limit))
        return [self._doc_to_item(d) for d in cursor]

    def count_published_items(self) -> int:
        return self.col_posts.count_documents({"status": "published"})

    def get_category_universe(self) -> List[int]:
        return sorted(int(c) for c in self.col_posts.distinct("category_ids") if c is not None)

    def get_tag_universe(self) -> List[int]:
        return sorted(int(t) for t in self.col_posts.distinct("tag_ids") if t is not None)

    # ------------------------------------------------------
    # 콘텐츠 벡터
    # ------------------------------------------------------
    def get_vector(self, item_id: int) -> Optional[ContentVector]:
        doc = self.col_vectors.find_one({"_id": item_id})
        return self._doc_to_vector(doc) if doc else None

    def get_vectors(self, item_ids: Iterable[int]) -> Dict[int, ContentVector]:
        cursor = self.col_vectors.find({"_id": {"$in": list(item_ids)}})
        vectors = [self._doc_to_vector(d) for d in cursor]
        return {v.item_id: v for v in vectors}

    def save_vector(self, vector: ContentVector) -> None:
        doc = {
            "_id": vector.item_id,
            "content_vector": list(vector.content_vector),
            "category_vector": list(vector.category_vector),
            "tag_vector": list(vector.tag_vector),
            "length_normalized": vector.length_normalized,
            "readability_score": vector.readability_score,
            "engagement_score": vector.engagement_score,
            "computed_at": vector.computed_at,
            "model_version": vector.model_version,
            "vocabulary_version": vector.vocabulary_version,
            "analyzer": vector.analyzer,
        }
        self.col_vectors.replace_one({"_id": vector.item_id}, doc, upsert=True)

    # ------------------------------------------------------
    # 방문자 프로필
    # ------------------------------------------------------
    def get_profile(self, profile_key: str) -> Optional[VisitorProfile]:
        doc = self.col_profiles.find_one({"_id": profile_key})
        return self._doc_to_profile(doc) if doc else None

    def save_profile(self, profile: VisitorProfile) -> None:
        self.col_profiles.replace_one(
            {"_id": profile.profile_key}, self._profile_to_doc(profile), upsert=True
        )

    def list_profiles(
        self,
        exclude_key: Optional[str] = None,
        limit: Optional[int] = None,
        require_preferences: bool = False,
    ) -> List[VisitorProfile]:
        query: Dict[str, Any] = {}
        if exclude_key is not None:
            query["_id"] = {"$ne": exclude_key}
        if require_preferences:
            query["category_preferences"] = {"$nin": [None, {}]}

        cursor = self.col_profiles.find(query).sort("_id", ASCENDING)
        if limit is not None:
            cursor = cursor.limit(int(limit))
        return [self._doc_to_profile(d) for d in cursor]

    # ------------------------------------------------------
    # 상호작용 로그 (append-only, update/delete 없음)
    # ------------------------------------------------------
    def append_interactions(self, records: Iterable[InteractionRecord]) -> None:
        docs = [self._interaction_to_doc(r) for r in records]
        if docs:
            self.col_interactions.insert_many(docs)

    def find_interactions(
        self,
        profile_keys: Optional[Iterable[str]] = None,
        item_ids: Optional[Iterable[int]] = None,
        kinds: Optional[Iterable[InteractionKind]] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        impressions: Optional[bool] = None,
    ) -> List[InteractionRecord]:
        query: Dict[str, Any] = {}
        if profile_keys is not None:
            query["profile_key"] = {"$in": list(profile_keys)}
        if item_ids is not None:
            query["item_id"] = {"$in": list(item_ids)}
        if kinds is not None:
            query["interaction_type"] = {"$in": [InteractionKind(k).value for k in kinds]}
        if since is not None or until is not None:
            created: Dict[str, Any] = {}
            if since is not None:
                created["$gte"] = since
            if until is not None:
                created["$lte"] = until
            query["created_at"] = created
        if impressions is not None:
            query["impression"] = impressions

        cursor = self.col_interactions.find(query).sort("created_at", ASCENDING)
        return [self._doc_to_interaction(d) for d in cursor]
