from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import os
from dotenv import load_dotenv

from exceptions import ValidationError
from logging_config import setup_logging
from routes.challenge_routes import otp_router
from database import create_db_and_tables
import uvicorn

load_dotenv()
setup_logging()
create_db_and_tables()

app = FastAPI(title="OTP Verification API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
)

app.include_router(otp_router)


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    error = ValidationError(errors[0]["msg"] if errors else None)
    return JSONResponse(status_code=error.status_code, content={"detail": error.to_detail()})


@app.get("/health")
def health():
    return {"status": "ok", "message": "OTP Verification API is running"}

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8001, reload=True)
