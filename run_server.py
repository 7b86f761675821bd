import os

import uvicorn

if __name__ == "__main__":
    host = os.environ.get("TIMELINE_HOST", "0.0.0.0")
    port = int(os.environ.get("TIMELINE_PORT", "8000"))

    print("Starting Tenant Timeline API Server...")
    print(f"Docs available at: http://localhost:{port}/docs")

    uvicorn.run(
        "timeline.api.server:app",
        host=host,
        port=port,
        reload=os.environ.get("TIMELINE_RELOAD", "").lower() in ("1", "true", "yes", "on")
    )
