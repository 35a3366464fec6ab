from datetime import datetime

from fastapi import APIRouter

from request_desk.db.adapter import StorageBackend, persistence

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    async def _counts(backend: StorageBackend) -> tuple[int, int]:
        return await backend.count("users"), await backend.count("requests")

    users, requests = await persistence.run("health", _counts)
    connected = persistence.mode == "primary"
    return {
        "success": True,
        "message": "Server is running",
        "database": "SQLite Connected" if connected else "Fallback Mode",
        "users": users,
        "requests": requests,
        "timestamp": datetime.utcnow().isoformat(),
    }
