from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from pathlib import Path
import json
import os

app = FastAPI(title="Mock Identity Provider", version="1.0.0")
# Support both local development and Docker
DATA_DIR = Path("/identity_stub") if os.path.exists("/identity_stub") else Path(__file__).resolve().parents[2] / "identity_stub"


class VerifyBody(BaseModel):
    token: str


@app.get("/health")
def health(): return {"status": "ok"}

@app.post("/api/auth/verify")
def verify(body: VerifyBody):
    tokens = json.loads((DATA_DIR / "tokens.json").read_text())
    identity = tokens.get(body.token)
    if identity is None:
        raise HTTPException(status_code=401, detail="invalid token")
    return identity


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
