from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class TypeEstimate(BaseModel):
    count: int
    batches: int


class ReindexResponse(BaseModel):
    status: str = Field(..., description="success, cancelled, dry_run or failure")
    dry_run: bool
    batch_size: int
    types: List[str]
    total_indexed: int
    by_type: Dict[str, int] = {}
    estimate: Dict[str, TypeEstimate] = {}
    stale_removed: Dict[str, int] = {}
    failures: Dict[str, str] = {}
    elapsed_seconds: float = 0.0
    message: str = ""


class MaintenanceResponse(BaseModel):
    action: str
    success: bool
    message: str
    elapsed_seconds: float
    details: Dict[str, Any] = {}


class CacheClearItemResponse(BaseModel):
    name: str
    success: bool
    message: str
    tags: List[str] = []
    degraded: bool = False


class CacheStatsResponse(BaseModel):
    hits: int
    misses: int
    writes: int
    invalidations: int


class CacheInfoResponse(BaseModel):
    enabled: bool
    driver: str
    prefix: str
    store_class: str
    supports_tags: bool
    stats: Optional[CacheStatsResponse] = None


class CacheClearResponse(BaseModel):
    selector: Optional[str] = None
    cleared: int = 0
    failed: int = 0
    items: List[CacheClearItemResponse] = []
    info: Optional[CacheInfoResponse] = None
    stats: Optional[CacheStatsResponse] = None


class CacheWarmItemResponse(BaseModel):
    name: str
    success: bool
    entries: int
    message: str


class CacheWarmResponse(BaseModel):
    """Per-item warming results; failures never change the exit code"""
    warmed: int
    failed: int
    items: List[CacheWarmItemResponse]
    stats: CacheStatsResponse
