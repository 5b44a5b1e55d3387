"""
Local dev server for the quick-entry API.

Starts uvicorn with reload and prints the calls a thin client makes during
one quick-entry flow.
"""

import uvicorn

from quickentry.config import settings

if __name__ == "__main__":
    print("Quick Entry API (local)")
    print()
    print("Endpoints:")
    print("   GET    /health")
    print("   POST   /quick-entry/sessions")
    print("   POST   /quick-entry/sessions/{id}/events   {\"type\": \"key\", \"value\": \"4\"}")
    print("   PUT    /quick-entry/sessions/{id}/selection")
    print("   POST   /quick-entry/sessions/{id}/commit")
    print("   GET    /offline-queue   POST /offline-queue/sync   DELETE /offline-queue")
    print()
    print("All endpoints except /health require: Authorization: Bearer <supabase access token>")
    print(f"Offline queues are stored under {settings.OFFLINE_QUEUE_DIR}/")
    print()

    uvicorn.run(
        "quickentry.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.LOG_LEVEL.lower(),
    )
