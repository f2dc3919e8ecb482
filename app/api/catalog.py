# app/api/catalog.py
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import distinct, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from app.core.cache import cached_response, invalidate_responses
from app.core.database import get_db
from app.core.errors import BadRequestError, NotFoundError
from app.core.security import require_roles
from app.models import catalog as dbm
from app.models.schemas import JobIn, JobOut, LookupOut, UniversityIn, UniversityOut

logger = logging.getLogger(__name__)

university_router = APIRouter(prefix="/university", tags=["Universities"])
job_router = APIRouter(prefix="/job", tags=["Jobs"])

# seconds
LIST_TTL = 30 * 60
DETAIL_TTL = 60 * 60
LOOKUP_TTL = 24 * 60 * 60


async def _add(db: AsyncSession, row):
    db.add(row)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise BadRequestError(
            "شناسه خارجی قبلاً ثبت شده است",
            "External id already exists",
        ) from e
    await db.refresh(row)
    return row


async def _lookup(db: AsyncSession, column, *criteria) -> dict:
    rows = await db.execute(select(distinct(column)).where(*criteria).order_by(column))
    values = [v for v in rows.scalars().all() if v]
    return LookupOut(count=len(values), data=values).model_dump()


@university_router.get("", response_model=List[UniversityOut])
async def list_universities(
    request: Request,
    field: str | None = Query(None),
    location: str | None = Query(None),
    university: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    async def load():
        q = select(dbm.University)
        if field:
            q = q.where(dbm.University.field == field)
        if location:
            q = q.where(dbm.University.location == location)
        if university:
            q = q.where(dbm.University.university == university)
        rows = await db.execute(q.order_by(dbm.University.created_at.desc()))
        return [UniversityOut.model_validate(r).model_dump(mode="json") for r in rows.scalars().all()]

    return await cached_response(request, LIST_TTL, load)


@university_router.get("/fields", response_model=LookupOut)
async def university_fields(request: Request, db: AsyncSession = Depends(get_db)):
    return await cached_response(
        request, LOOKUP_TTL, lambda: _lookup(db, dbm.University.field)
    )


@university_router.get("/locations", response_model=LookupOut)
async def university_locations(request: Request, db: AsyncSession = Depends(get_db)):
    return await cached_response(
        request, LOOKUP_TTL, lambda: _lookup(db, dbm.University.location)
    )


@university_router.get("/{item_id}", response_model=UniversityOut)
async def get_university(item_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    async def load():
        row = await db.get(dbm.University, item_id)
        if row is None:
            raise NotFoundError("برنامه دانشگاهی یافت نشد", "University program not found")
        return UniversityOut.model_validate(row).model_dump(mode="json")

    return await cached_response(request, DETAIL_TTL, load)


@university_router.post(
    "",
    response_model=UniversityOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[require_roles("admin")],
)
async def create_university(
    payload: UniversityIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    row = await _add(db, dbm.University(**payload.model_dump()))
    await invalidate_responses(request)
    logger.info("University program created", extra={"id": row.id, "external_id": row.external_id})
    return row


@job_router.get("", response_model=List[JobOut])
async def list_jobs(
    request: Request,
    type: str | None = Query(None),
    location: str | None = Query(None),
    company: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    async def load():
        q = select(dbm.Job).where(dbm.Job.is_active.is_(True))
        if type:
            q = q.where(dbm.Job.type == type)
        if location:
            q = q.where(dbm.Job.location == location)
        if company:
            q = q.where(dbm.Job.company == company)
        rows = await db.execute(q.order_by(dbm.Job.created_at.desc()))
        return [JobOut.model_validate(r).model_dump(mode="json") for r in rows.scalars().all()]

    return await cached_response(request, LIST_TTL, load)


@job_router.get("/types", response_model=LookupOut)
async def job_types(request: Request, db: AsyncSession = Depends(get_db)):
    return await cached_response(
        request, LOOKUP_TTL, lambda: _lookup(db, dbm.Job.type, dbm.Job.is_active.is_(True))
    )


@job_router.get("/locations", response_model=LookupOut)
async def job_locations(request: Request, db: AsyncSession = Depends(get_db)):
    return await cached_response(
        request, LOOKUP_TTL, lambda: _lookup(db, dbm.Job.location, dbm.Job.is_active.is_(True))
    )


@job_router.get("/companies", response_model=LookupOut)
async def job_companies(request: Request, db: AsyncSession = Depends(get_db)):
    return await cached_response(
        request, LOOKUP_TTL, lambda: _lookup(db, dbm.Job.company, dbm.Job.is_active.is_(True))
    )


@job_router.get("/{item_id}", response_model=JobOut)
async def get_job(item_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    async def load():
        rows = await db.execute(
            select(dbm.Job).where(dbm.Job.id == item_id, dbm.Job.is_active.is_(True))
        )
        row = rows.scalars().first()
        if row is None:
            raise NotFoundError("شغل مورد نظر یافت نشد", "Job not found")
        return JobOut.model_validate(row).model_dump(mode="json")

    return await cached_response(request, DETAIL_TTL, load)


@job_router.post(
    "",
    response_model=JobOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[require_roles("admin")],
)
async def create_job(payload: JobIn, request: Request, db: AsyncSession = Depends(get_db)):
    row = await _add(db, dbm.Job(**payload.model_dump()))
    await invalidate_responses(request)
    logger.info("Job created", extra={"id": row.id, "external_id": row.external_id})
    return row
