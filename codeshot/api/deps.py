from typing import Optional

from fastapi import Header, HTTPException, status

from codeshot.services import ServiceFactory
from codeshot.services.snapshot_pipeline import SnapshotPipeline


def get_snapshot_pipeline() -> SnapshotPipeline:
    """获取快照编排服务单例"""
    return ServiceFactory.get_snapshot_pipeline()


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity as established by the upstream auth layer"""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id


def get_access_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    """Repository-host token forwarded as ``Authorization: Bearer <token>``"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()
