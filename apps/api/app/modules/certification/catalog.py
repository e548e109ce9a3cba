"""Default certification catalog seeded into certification_types."""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.certification import CertificationType

logger = structlog.get_logger()

DEFAULT_CERTIFICATION_TYPES: list[dict] = [
    {
        "name": "ISO 14001 - Environmental Management",
        "description": "International standard for environmental management systems",
        "requirements": [
            "Environmental policy",
            "Environmental aspects assessment",
            "Legal compliance documentation",
            "Management review process",
        ],
        "validity_period": 36,
        "industry": ["Manufacturing", "Construction", "Energy", "All Industries"],
        "difficulty": "High",
        "provider": "ISO",
        "provider_url": "https://www.iso.org",
        "estimated_time": "6-12 months",
        "cost": "High",
        "relevance": 5,
    },
    {
        "name": "GRESB Assessment",
        "description": "Global ESG benchmark for real estate and infrastructure",
        "requirements": [
            "Asset portfolio documentation",
            "Energy consumption data",
            "Stakeholder engagement evidence",
            "ESG policies",
        ],
        "validity_period": 12,
        "industry": ["Real Estate", "Infrastructure"],
        "difficulty": "Medium-High",
        "provider": "GRESB",
        "provider_url": "https://gresb.com",
        "estimated_time": "3-4 months",
        "cost": "High",
        "relevance": 4,
    },
    {
        "name": "GRI Sustainability Reporting",
        "description": "Global standards for sustainability reporting",
        "requirements": [
            "Materiality assessment",
            "Stakeholder engagement",
            "Data collection systems",
            "Report preparation",
        ],
        "validity_period": 24,
        "industry": ["All Industries"],
        "difficulty": "Medium",
        "provider": "GRI",
        "provider_url": "https://www.globalreporting.org",
        "estimated_time": "4-6 months",
        "cost": "Medium",
        "relevance": 3,
    },
    {
        "name": "AWS Environmental Stewardship",
        "description": "Alliance for Water Stewardship certification",
        "requirements": [
            "Water usage assessment",
            "Catchment management plan",
            "Stakeholder engagement",
            "Performance tracking",
        ],
        "validity_period": 36,
        "industry": ["Manufacturing", "Agriculture", "Food & Beverage"],
        "difficulty": "High",
        "provider": "AWS",
        "provider_url": "https://a4ws.org",
        "estimated_time": "8-12 months",
        "cost": "High",
        "relevance": 5,
    },
    {
        "name": "Cradle to Cradle Certified",
        "description": "Product sustainability certification for circular economy",
        "requirements": [
            "Material health assessment",
            "Material reutilization plan",
            "Renewable energy use",
            "Water stewardship",
        ],
        "validity_period": 24,
        "industry": ["Manufacturing", "Consumer Goods", "Textiles"],
        "difficulty": "High",
        "provider": "C2C",
        "provider_url": "https://www.c2ccertified.org",
        "estimated_time": "6-9 months",
        "cost": "High",
        "relevance": 4,
    },
    {
        "name": "BREEAM Certification",
        "description": "Building sustainability assessment method",
        "requirements": [
            "Energy efficiency assessment",
            "Materials documentation",
            "Waste management plan",
            "Transport assessment",
        ],
        "validity_period": 36,
        "industry": ["Construction", "Real Estate"],
        "difficulty": "Medium-High",
        "provider": "BRE Group",
        "provider_url": "https://www.breeam.com",
        "estimated_time": "4-8 months",
        "cost": "Medium",
        "relevance": 4,
    },
    {
        "name": "FSC Chain of Custody",
        "description": "Forest Stewardship Council supply chain certification",
        "requirements": [
            "Material sourcing documentation",
            "Chain of custody procedures",
            "Staff training records",
            "Volume control system",
        ],
        "validity_period": 60,
        "industry": ["Forestry", "Paper", "Furniture", "Construction"],
        "difficulty": "Medium",
        "provider": "FSC",
        "provider_url": "https://fsc.org",
        "estimated_time": "3-6 months",
        "cost": "Medium",
        "relevance": 5,
    },
    {
        "name": "Zero Waste Certification",
        "description": "TRUE Zero Waste certification program",
        "requirements": [
            "Waste audit",
            "Zero waste policy",
            "Diversion rate documentation",
            "Employee training program",
        ],
        "validity_period": 24,
        "industry": ["Manufacturing", "Retail", "Food Service", "All Industries"],
        "difficulty": "Medium",
        "provider": "GBCI",
        "provider_url": "https://true.gbci.org",
        "estimated_time": "4-8 months",
        "cost": "Medium",
        "relevance": 3,
    },
    {
        "name": "EcoVadis Sustainability Rating",
        "description": "Supply chain sustainability assessment and rating platform",
        "requirements": [
            "CSR documentation",
            "Environmental performance data",
            "Labor practices evidence",
            "Supply chain ethics documentation",
        ],
        "validity_period": 12,
        "industry": ["All Industries", "Manufacturing", "Logistics"],
        "difficulty": "Medium",
        "provider": "EcoVadis",
        "provider_url": "https://ecovadis.com",
        "estimated_time": "2-3 months",
        "cost": "Medium",
        "relevance": 4,
    },
    {
        "name": "B Corp Certification",
        "description": (
            "Certification for businesses meeting high social and environmental "
            "performance standards"
        ),
        "requirements": [
            "B Impact Assessment",
            "Legal accountability documentation",
            "Transparency requirements",
            "Performance verification",
        ],
        "validity_period": 36,
        "industry": ["All Industries"],
        "difficulty": "High",
        "provider": "B Lab",
        "provider_url": "https://bcorporation.net",
        "estimated_time": "6-10 months",
        "cost": "Medium",
        "relevance": 5,
    },
    {
        "name": "LEED Certification",
        "description": "Leadership in Energy and Environmental Design green building certification",
        "requirements": [
            "Energy efficiency documentation",
            "Water efficiency evidence",
            "Material selection criteria",
            "Indoor environmental quality",
        ],
        "validity_period": 60,
        "industry": ["Construction", "Real Estate", "Architecture"],
        "difficulty": "High",
        "provider": "USGBC",
        "provider_url": "https://www.usgbc.org",
        "estimated_time": "12-24 months",
        "cost": "High",
        "relevance": 5,
    },
    {
        "name": "SBTi Certification",
        "description": "Science Based Targets initiative for climate action",
        "requirements": [
            "Emissions inventory",
            "Target setting documentation",
            "Progress tracking system",
            "Climate action plan",
        ],
        "validity_period": 24,
        "industry": ["All Industries", "Energy", "Manufacturing"],
        "difficulty": "High",
        "provider": "SBTi",
        "provider_url": "https://sciencebasedtargets.org",
        "estimated_time": "6-12 months",
        "cost": "High",
        "relevance": 5,
    },
]


async def seed_certification_types(db: AsyncSession) -> int:
    """Insert catalog entries missing by name. Returns the number inserted.

    Called from the FastAPI lifespan startup hook and scripts/seed_certifications.py.
    """
    result = await db.execute(select(CertificationType.name))
    existing = set(result.scalars().all())

    inserted = 0
    for entry in DEFAULT_CERTIFICATION_TYPES:
        if entry["name"] in existing:
            continue
        db.add(CertificationType(**entry))
        inserted += 1
        logger.info("certification_type_seeded", name=entry["name"])

    await db.commit()
    return inserted
