"""Skill catalogue shared by jobs and worker profiles."""

SKILLS = (
    "ac-repair",
    "car-wash",
    "cleaner",
    "cook",
    "driver",
    "electrician",
    "furniture-assembler",
    "gardener",
    "helper",
    "interior-decorator",
    "mason",
    "mechanic",
    "nurse",
    "pest-control",
    "plumber",
    "sofa-cleaning",
    "tailor",
    "tiler",
    "tutor",
    "appliance-repair",
    "painter",
    "security-guard",
    "carpenter",
    "moving-packing",
)

# Pseudo-filters accepted by the available-jobs listing
FOR_YOU = "For you"
ALL_SERVICES = "All Services"


def is_known_skill(skill: str) -> bool:
    return skill in SKILLS


def normalize_skills(skills) -> list[str]:
    """Strip, lowercase and de-duplicate, keeping first-seen order."""
    seen: list[str] = []
    for raw in skills or []:
        skill = str(raw).strip().lower()
        if skill and skill not in seen:
            seen.append(skill)
    return seen
