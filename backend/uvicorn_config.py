import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=True,
        timeout_keep_alive=300,
        log_level="info",
        # Each worker process holds its own tree cache.
        workers=1,
        loop="asyncio",
        http="httptools"
    )
