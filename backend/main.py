import logging
import os

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.errors import register_exception_handlers
from backend.core.logging_config import configure_logging, log_requests
from backend.database import ensure_schema
from backend.routes import admin_routes, auth_routes, contributor_routes, ngo_routes, otp_routes, user_routes

API_PREFIX = '/api/v1'

configure_logging()
config.validate_runtime_config()

app = FastAPI(title='Byte2Bite API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)
app.middleware('http')(log_requests)
register_exception_handlers(app)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        ensure_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')


@app.get('/')
def root():
    return {'status': 'Byte2Bite API Running'}


app.include_router(auth_routes.router, prefix=f'{API_PREFIX}/auth')
app.include_router(user_routes.router, prefix=f'{API_PREFIX}/user')
app.include_router(otp_routes.router, prefix=f'{API_PREFIX}/verify')
app.include_router(contributor_routes.router, prefix=f'{API_PREFIX}/contributor/dashboard')
app.include_router(ngo_routes.router, prefix=f'{API_PREFIX}/ngo')
app.include_router(admin_routes.router, prefix=f'{API_PREFIX}/admin')

os.makedirs(config.UPLOAD_DIR, exist_ok=True)
app.mount('/uploads', StaticFiles(directory=config.UPLOAD_DIR), name='uploads')


if __name__ == '__main__':
    uvicorn.run('backend.main:app', host='0.0.0.0', port=8000, reload=config.APP_ENV == 'development')
