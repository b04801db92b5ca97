"""
Vector Index Store with FAISS

Collection-based vector index: create-if-absent collections with a fixed
dimension and distance metric, batch upsert of (id, vector, payload) entries
and exact nearest-neighbour search.

Each collection is a FAISS ``IndexIDMap2`` over a flat index, so upserts can
replace entries by id and search results are exact and ordered. Collections
are persisted under ``storage_dir`` (one directory per collection, index and
payload metadata written atomically); without a storage directory the store
is purely in-memory.
"""

import logging
import os
import pickle
import re
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import faiss
import numpy as np

from ..errors import IndexStoreFailure
from ..models import IndexEntry, SearchHit

logger = logging.getLogger(__name__)

METRICS = ('Cosine', 'Dot', 'Euclid')
INDEX_FILE = 'index.faiss'
META_FILE = 'collection.meta'

_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_\-]+$')


@dataclass
class CollectionInfo:
    """Schema and size of a collection."""
    name: str
    dimension: int
    metric: str
    count: int = 0


@dataclass
class _Collection:
    name: str
    dimension: int
    metric: str
    index: faiss.Index
    # external string id -> internal int64 id
    ids: Dict[str, int] = field(default_factory=dict)
    # internal int64 id -> (external id, payload)
    payloads: Dict[int, Tuple[str, Dict]] = field(default_factory=dict)
    next_id: int = 0


def _build_index(dimension: int, metric: str) -> faiss.Index:
    if metric == 'Euclid':
        base = faiss.IndexFlatL2(dimension)
    else:
        base = faiss.IndexFlatIP(dimension)
    return faiss.IndexIDMap2(base)


class IndexStore:
    """
    Vector index abstraction over FAISS.

    Reads and writes are serialized with a re-entrant lock, so searches may
    run while an ingestion run is upserting; new entries are visible as soon
    as ``upsert_batch`` returns.
    """

    def __init__(self, storage_dir: Optional[str] = None):
        """
        Args:
            storage_dir: Directory for persisted collections (None: in-memory only)
        """
        self.storage_dir = Path(storage_dir) if storage_dir else None
        self._collections: Dict[str, _Collection] = {}
        self._lock = threading.RLock()

        if self.storage_dir is not None:
            try:
                self.storage_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise IndexStoreFailure(f"Cannot create index directory {self.storage_dir}: {e}")
            self._load_all()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _collection_dir(self, name: str) -> Path:
        return self.storage_dir / name

    def _load_all(self) -> None:
        """Load every persisted collection found under the storage directory."""
        for entry in sorted(self.storage_dir.iterdir()):
            if not (entry / META_FILE).exists():
                continue
            try:
                self._collections[entry.name] = self._load_collection(entry)
                logger.info(
                    f"Loaded collection '{entry.name}' "
                    f"({self._collections[entry.name].index.ntotal} entries)"
                )
            except Exception as e:
                logger.error(f"Failed to load collection '{entry.name}': {e}")

    def _load_collection(self, path: Path) -> _Collection:
        with open(path / META_FILE, 'rb') as f:
            meta = pickle.load(f)

        index_path = path / INDEX_FILE
        if index_path.exists():
            index = faiss.read_index(str(index_path))
        else:
            index = _build_index(meta['dimension'], meta['metric'])

        # Verify synchronization
        if index.ntotal != len(meta['payloads']):
            raise ValueError(
                f"Index has {index.ntotal} vectors but metadata has "
                f"{len(meta['payloads'])} entries"
            )

        return _Collection(
            name=path.name,
            dimension=meta['dimension'],
            metric=meta['metric'],
            index=index,
            ids=meta['ids'],
            payloads=meta['payloads'],
            next_id=meta['next_id'],
        )

    def _persist(self, collection: _Collection) -> None:
        """Write index and metadata with atomic renames."""
        if self.storage_dir is None:
            return

        path = self._collection_dir(collection.name)
        path.mkdir(parents=True, exist_ok=True)

        index_path = path / INDEX_FILE
        meta_path = path / META_FILE
        temp_index_path = Path(str(index_path) + '.tmp')
        temp_meta_path = Path(str(meta_path) + '.tmp')

        meta = {
            'dimension': collection.dimension,
            'metric': collection.metric,
            'ids': collection.ids,
            'payloads': collection.payloads,
            'next_id': collection.next_id,
        }

        try:
            faiss.write_index(collection.index, str(temp_index_path))
            with open(temp_meta_path, 'wb') as f:
                pickle.dump(meta, f, protocol=pickle.HIGHEST_PROTOCOL)

            os.replace(temp_index_path, index_path)
            os.replace(temp_meta_path, meta_path)
        except Exception as e:
            # Clean up temp files on error
            for temp_path in (temp_index_path, temp_meta_path):
                if temp_path.exists():
                    temp_path.unlink()
            raise IndexStoreFailure(f"Failed to persist collection '{collection.name}': {e}")

    # ------------------------------------------------------------------
    # Collection management
    # ------------------------------------------------------------------

    def _get(self, name: str) -> _Collection:
        collection = self._collections.get(name)
        if collection is None:
            raise IndexStoreFailure(f"Collection '{name}' does not exist")
        return collection

    def list_collections(self) -> List[str]:
        """Names of all collections."""
        with self._lock:
            return sorted(self._collections)

    def collection_info(self, name: str) -> CollectionInfo:
        """Schema and entry count of a collection."""
        with self._lock:
            collection = self._get(name)
            return CollectionInfo(
                name=collection.name,
                dimension=collection.dimension,
                metric=collection.metric,
                count=collection.index.ntotal,
            )

    def ensure_collection(self, name: str, dimension: int, metric: str = 'Cosine') -> bool:
        """
        Create a collection if it does not exist yet.

        Args:
            name: Collection name (letters, digits, ``_`` and ``-``)
            dimension: Vector dimension
            metric: One of ``Cosine``, ``Dot``, ``Euclid``

        Returns:
            True if the collection was created, False if it already existed

        Raises:
            IndexStoreFailure: If the name or schema is invalid, or an existing
                collection has a different dimension or metric
        """
        if not _NAME_PATTERN.match(name or ''):
            raise IndexStoreFailure(f"Invalid collection name: {name!r}")
        if dimension <= 0:
            raise IndexStoreFailure(f"dimension must be positive, got {dimension}")
        if metric not in METRICS:
            raise IndexStoreFailure(f"Unsupported metric '{metric}', expected one of {METRICS}")

        with self._lock:
            existing = self._collections.get(name)
            if existing is not None:
                if existing.dimension != dimension or existing.metric != metric:
                    raise IndexStoreFailure(
                        f"Collection '{name}' exists with dimension={existing.dimension}, "
                        f"metric={existing.metric}; requested dimension={dimension}, metric={metric}"
                    )
                logger.debug(f"Collection '{name}' already exists")
                return False

            collection = _Collection(
                name=name,
                dimension=dimension,
                metric=metric,
                index=_build_index(dimension, metric),
            )
            self._persist(collection)
            self._collections[name] = collection
            logger.info(f"Created collection '{name}' (dimension={dimension}, metric={metric})")
            return True

    def delete_collection(self, name: str) -> bool:
        """
        Drop a collection and its files.

        Returns:
            True if a collection was removed
        """
        with self._lock:
            if self._collections.pop(name, None) is None:
                return False
            if self.storage_dir is not None:
                shutil.rmtree(self._collection_dir(name), ignore_errors=True)
            logger.info(f"Deleted collection '{name}'")
            return True

    def count(self, name: str) -> int:
        """Number of entries in a collection."""
        with self._lock:
            return self._get(name).index.ntotal

    # ------------------------------------------------------------------
    # Data operations
    # ------------------------------------------------------------------

    def _prepare(self, vectors: List[Sequence[float]], collection: _Collection) -> np.ndarray:
        try:
            vectors = np.array(vectors, dtype=np.float32)
        except (ValueError, TypeError) as e:
            raise IndexStoreFailure(f"Vectors must be equal-length numeric sequences: {e}")
        if vectors.ndim != 2 or vectors.shape[1] != collection.dimension:
            raise IndexStoreFailure(
                f"Vector shape {vectors.shape} does not match "
                f"collection dimension ({collection.dimension})"
            )
        if not np.all(np.isfinite(vectors)):
            raise IndexStoreFailure("Vectors must contain only finite values")
        if collection.metric == 'Cosine':
            faiss.normalize_L2(vectors)
        return vectors

    def upsert_batch(self, name: str, entries: Sequence[IndexEntry]) -> int:
        """
        Insert or replace entries by id.

        An empty batch is a no-op and does not touch the index or disk.

        Args:
            name: Collection name
            entries: IndexEntry records

        Returns:
            Number of distinct entries written

        Raises:
            IndexStoreFailure: Unknown collection, bad vectors or storage errors
        """
        if not entries:
            return 0

        # Last entry wins when a batch repeats an id
        entries = list({entry.id: entry for entry in entries}.values())

        with self._lock:
            collection = self._get(name)
            vectors = self._prepare([entry.vector for entry in entries], collection)

            try:
                # Replace existing ids
                stale = [collection.ids[entry.id] for entry in entries if entry.id in collection.ids]
                if stale:
                    collection.index.remove_ids(np.array(stale, dtype=np.int64))
                    for internal_id in stale:
                        collection.payloads.pop(internal_id, None)

                internal_ids = np.arange(
                    collection.next_id, collection.next_id + len(entries), dtype=np.int64
                )
                collection.index.add_with_ids(vectors, internal_ids)
                collection.next_id += len(entries)

                for entry, internal_id in zip(entries, internal_ids):
                    collection.ids[entry.id] = int(internal_id)
                    collection.payloads[int(internal_id)] = (entry.id, dict(entry.payload))
            except Exception as e:
                raise IndexStoreFailure(f"Upsert into '{name}' failed: {e}")

            self._persist(collection)
            logger.info(f"Upserted {len(entries)} entries into '{name}'")
            return len(entries)

    def search(self, name: str, vector: Sequence[float], limit: int = 5) -> List[SearchHit]:
        """
        Nearest-neighbour search.

        Args:
            name: Collection name
            vector: Query vector
            limit: Maximum number of hits

        Returns:
            Up to ``limit`` SearchHit records, highest score first. Scores are
            cosine similarity (Cosine), inner product (Dot) or negated L2
            distance (Euclid). Empty collections return an empty list.

        Raises:
            IndexStoreFailure: Unknown collection, bad vector or FAISS errors
        """
        if limit < 0:
            raise IndexStoreFailure(f"limit must be non-negative, got {limit}")

        with self._lock:
            collection = self._get(name)
            if limit == 0 or collection.index.ntotal == 0:
                return []

            query = self._prepare([vector], collection)
            k = min(limit, collection.index.ntotal)

            try:
                scores, indices = collection.index.search(query, k)
            except Exception as e:
                raise IndexStoreFailure(f"Search in '{name}' failed: {e}")

            hits = []
            for score, internal_id in zip(scores[0], indices[0]):
                if internal_id < 0:
                    continue
                _, payload = collection.payloads[int(internal_id)]
                if collection.metric == 'Euclid':
                    # IndexFlatL2 reports squared distances
                    score = -float(np.sqrt(max(score, 0.0)))
                hits.append(SearchHit(payload=dict(payload), score=float(score)))

            return hits

    def __repr__(self) -> str:
        return f"IndexStore(storage_dir={self.storage_dir}, collections={self.list_collections()})"
