# pof_storage/samples.py
# Demo records used by the full workflow and the CLI.
from .schemas import CategoryRating, EventMetadata, MerchItem, ProofOfFunResults

DEFAULT_CATEGORIES = [
    "Ambience",
    "Organization",
    "Content",
    "Technology",
    "Entertainment",
    "Accessibility",
]

PROOF_OF_FUN_CONTRACT = "0x970fad202ADD7A19a3c377E0eCB4bbbDba9AAE49"


def _rating(average, distribution):
    return CategoryRating(average=average, total_votes=sum(distribution.values()), distribution=distribution)


def sample_event() -> EventMetadata:
    return EventMetadata(
        id=1,
        name="ETH Global Buenos Aires 2025",
        description="Hackathon internacional de Ethereum",
        location="Buenos Aires, Argentina",
        start_date="2025-11-20",
        end_date="2025-11-23",
        categories=list(DEFAULT_CATEGORIES),
        contract_address=PROOF_OF_FUN_CONTRACT,
    )


def sample_results() -> ProofOfFunResults:
    return ProofOfFunResults(
        event_name="ETH Global Buenos Aires 2025",
        total_votes=350,
        total_attendees=450,
        participation_rate=77.8,
        category_ratings={
            "Ambience": _rating(4.5, {"1": 5, "2": 15, "3": 40, "4": 120, "5": 170}),
            "Organization": _rating(4.7, {"1": 3, "2": 10, "3": 30, "4": 107, "5": 200}),
            "Content": _rating(4.3, {"1": 8, "2": 20, "3": 50, "4": 140, "5": 132}),
            "Technology": _rating(4.6, {"1": 4, "2": 12, "3": 35, "4": 110, "5": 189}),
            "Entertainment": _rating(4.4, {"1": 6, "2": 18, "3": 45, "4": 125, "5": 156}),
            "Accessibility": _rating(4.2, {"1": 10, "2": 22, "3": 55, "4": 135, "5": 128}),
        },
        overall_rating=4.5,
        verified_on_chain=True,
    )


def sample_catalog() -> list:
    return [
        MerchItem(
            id=1,
            name="ETH Global T-Shirt",
            description="Limited edition hackathon t-shirt",
            token_price=150,
            stock=100,
            sizes=["S", "M", "L", "XL"],
            category="clothing",
        ),
        MerchItem(id=2, name="ETH Cap", description="Baseball cap with ETH logo", token_price=100, stock=50, category="accessories"),
        MerchItem(id=3, name="Sticker Pack", description="5 exclusive stickers", token_price=50, stock=200, category="accessories"),
        MerchItem(
            id=4,
            name="Laptop Sleeve",
            description="Protective laptop sleeve with ETH branding",
            token_price=200,
            stock=30,
            category="tech",
        ),
    ]
