"""Product service - client products and website brand analysis."""

import html
import logging
import re
from uuid import UUID

import httpx
import nh3
from sqlalchemy.orm import Session

from app.core.tenancy import scope_owned_query
from app.core.url_validation import get_public_url, validate_outbound_url
from app.db.enums import JobType, ProductStatus, Role
from app.db.models import Job, Product
from app.db.types import utcnow
from app.schemas.auth import CallerContext
from app.schemas.product import ProductCreate
from app.services import job_service
from app.services.ai_prompt_schemas import AIBrandAnalysisOutput
from app.services.ai_provider import ChatMessage, get_analysis_provider

logger = logging.getLogger(__name__)

MAX_SITE_CHARS = 10000
FETCH_TIMEOUT_SECONDS = 20.0
USER_AGENT = "Mozilla/5.0 (compatible; BriefDeskBot/1.0)"

ANALYSIS_SECTIONS = (
    "One-Liner Pitch",
    "Target Audience",
    "Brand Voice",
    "Key Messages",
    "Visual Style",
    "Color Palette",
    "Do's and Don'ts",
)

ANALYSIS_PROMPT = """You are a senior brand strategist. Using the website text below, write \
brand guidelines a creative team can follow when producing ads for this product.

Start with a line "Product: [<product category>]". Then write one markdown section per \
heading below, each as "## <Heading>: <content>":
{sections}

Product name: {name}
Website: {url}

Website text:
{content}"""

_PRODUCT_TYPE_RE = re.compile(r"Product:\s*\[([^\]]+)\]")
_PITCH_RE = re.compile(r"One-Liner Pitch[^:]*:\s*([^\n#]+)")
_WHITESPACE_RE = re.compile(r"\s+")


class AnalysisError(Exception):
    pass


def _scoped(db: Session, caller: CallerContext):
    return scope_owned_query(
        db.query(Product), caller, Product.organization_id, Product.owner_user_id
    )


def list_products(db: Session, caller: CallerContext) -> list[Product]:
    return _scoped(db, caller).order_by(Product.created_at.desc()).all()


def get_product(db: Session, caller: CallerContext, product_id: UUID) -> Product | None:
    return _scoped(db, caller).filter(Product.id == product_id).first()


def create_product(db: Session, caller: CallerContext, data: ProductCreate) -> Product:
    """
    Register a client product in the primary (or named) organization.

    Raises:
        PermissionError: caller is not a client
        ValueError: client has no organization, or the website URL is refused
        LookupError: named organization outside scope
    """
    if caller.role != Role.CLIENT:
        raise PermissionError("Only clients can add products")
    org_id = data.organization_id or caller.primary_org_id
    if org_id is None:
        raise ValueError("Join a service provider before adding products")
    if not caller.can_access_org(org_id):
        raise LookupError("Organization not found")
    try:
        website_url = validate_outbound_url(str(data.website_url))
    except ValueError as e:
        raise ValueError(f"website_url: {e}") from e

    product = Product(
        owner_user_id=caller.user_id,
        organization_id=org_id,
        name=data.name.strip(),
        website_url=website_url,
        status=ProductStatus.PENDING.value,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def delete_product(db: Session, product: Product) -> None:
    db.delete(product)
    db.commit()


def queue_analysis(db: Session, product: Product) -> Job:
    product.status = ProductStatus.PENDING.value
    db.commit()
    return job_service.schedule_job(
        db,
        org_id=product.organization_id,
        job_type=JobType.ANALYZE_PRODUCT,
        payload={"product_id": str(product.id)},
        max_attempts=1,
    )


# =============================================================================
# Analysis
# =============================================================================

def html_to_text(markup: str) -> str:
    """Drop tags (and script/style bodies), unescape entities, collapse whitespace."""
    text = nh3.clean(markup, tags=set())
    return _WHITESPACE_RE.sub(" ", html.unescape(text)).strip()


def extract_section(document: str, name: str) -> str | None:
    pattern = re.compile(rf"(?:##|###|\*\*).*?{re.escape(name)}[^:]*:([^#\n]+)", re.IGNORECASE)
    match = pattern.search(document)
    if not match:
        return None
    value = match.group(1).strip().strip("*").strip()
    return value or None


def infer_product_type(document: str) -> str | None:
    match = _PRODUCT_TYPE_RE.search(document)
    if match:
        return match.group(1).strip()
    match = _PITCH_RE.search(document)
    if match:
        return match.group(1).strip().strip("*").strip()[:255] or None
    return None


def parse_analysis(document: str) -> AIBrandAnalysisOutput:
    sections = {}
    for name in ANALYSIS_SECTIONS:
        value = extract_section(document, name)
        if value:
            sections[name] = value
    return AIBrandAnalysisOutput(product_type=infer_product_type(document), sections=sections)


async def fetch_site_text(url: str) -> str:
    async with httpx.AsyncClient(
        timeout=FETCH_TIMEOUT_SECONDS,
        headers={"User-Agent": USER_AGENT},
    ) as client:
        try:
            response = await get_public_url(client, url)
        except ValueError as e:
            raise AnalysisError(f"Website URL refused: {e}") from e
        response.raise_for_status()
    text = html_to_text(response.text)
    if not text:
        raise AnalysisError("Website returned no readable text")
    return text[:MAX_SITE_CHARS]


async def analyze_product(db: Session, product_id: UUID) -> Product:
    """
    Run the website analysis for a product.

    Status moves pending -> analyzing -> completed, or failed with
    analysis_data = {error, timestamp}. Failures are recorded, then re-raised
    so the job is marked failed too.
    """
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise LookupError(f"Product {product_id} not found")

    product.status = ProductStatus.ANALYZING.value
    db.commit()

    try:
        site_text = await fetch_site_text(product.website_url)
        provider = get_analysis_provider()
        prompt = ANALYSIS_PROMPT.format(
            sections="\n".join(f"- {name}" for name in ANALYSIS_SECTIONS),
            name=product.name,
            url=product.website_url,
            content=site_text,
        )
        response = await provider.chat(
            [ChatMessage(role="user", content=prompt)],
            temperature=0.4,
            max_tokens=4000,
        )
        document = response.content.strip()
        if not document:
            raise AnalysisError("Analysis model returned an empty document")
    except Exception as e:
        logger.warning(
            "Product analysis failed: %s", type(e).__name__, extra={"product_id": str(product.id)}
        )
        product.status = ProductStatus.FAILED.value
        product.analysis_data = {"error": str(e) or type(e).__name__, "timestamp": utcnow().isoformat()}
        db.commit()
        raise

    parsed = parse_analysis(document)
    product.brand_guidelines = document
    product.product_type = parsed.product_type
    product.analysis_data = {
        "sections": parsed.sections,
        "source_chars": len(site_text),
        "model": response.model,
        "timestamp": utcnow().isoformat(),
    }
    product.status = ProductStatus.COMPLETED.value
    db.commit()
    db.refresh(product)
    return product
