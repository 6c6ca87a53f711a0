import uvicorn

from mp4index.main import app

# Run the indexer app
if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8888)
