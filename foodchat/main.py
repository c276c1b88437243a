# Run from project root: uvicorn foodchat.main:app --reload

import logging

from fastapi import FastAPI

from foodchat.api.routes import router

logging.basicConfig(level=logging.INFO)


app = FastAPI(title="Food RAG Chat Backend")
app.include_router(router)
