from payment_categorizer.models import TrainingSample

# How a merchant name typically shows up in a Czech bank statement line.
_TEMPLATES = (
    "{merchant}",
    "Platba kartou {merchant}",
    "Nakup {merchant} CZK",
)

# (category id, merchant names)
_DEFAULT_MERCHANTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("cat_groceries", (
        "Albert Hypermarket", "Billa", "Lidl", "Kaufland", "Tesco",
        "Penny Market", "Globus", "Rohlik.cz", "Kosik.cz", "Norma",
    )),
    ("cat_dining", (
        "McDonald's", "KFC", "Burger King", "Starbucks", "Costa Coffee",
        "Bageterie Boulevard", "Wolt", "Foodora", "Restaurace", "Pizzerie",
    )),
    ("cat_transport", (
        "DPP jizdenka", "Uber trip", "Bolt ride", "Ceske drahy", "RegioJet",
        "Liftago", "Shell", "OMV", "Benzina", "Parkovani",
    )),
    ("cat_utilities", (
        "CEZ elektrina", "PRE elektrina", "Innogy plyn", "Prazska vodarenska",
        "O2 Czech Republic", "T-Mobile", "Vodafone", "UPC internet",
    )),
    ("cat_entertainment", (
        "Netflix", "Spotify", "HBO Max", "Disney+", "YouTube Premium",
        "Steam", "PlayStation Store", "Cinema City", "Ticketportal", "Ticketmaster",
    )),
    ("cat_shopping", (
        "Alza.cz", "Amazon", "IKEA", "Datart", "Mall.cz",
        "Zara", "H&M", "Decathlon", "DM drogerie", "Rossmann",
    )),
    ("cat_health", (
        "Lekarna", "Dr.Max lekarna", "Benu lekarna", "Zubni ordinace",
        "Poliklinika", "Eiffel Optic", "Fitness centrum", "Multisport",
    )),
    ("cat_travel", (
        "Booking.com", "Airbnb", "Ryanair", "Wizz Air", "Smartwings",
        "Hotel", "Invia", "Letiste Praha",
    )),
    ("cat_investments", (
        "Trading 212", "Degiro", "XTB", "Coinbase", "Portu", "Fondee",
    )),
    ("cat_housing", (
        "Hornbach", "OBI", "Bauhaus", "Najemne byt", "Fond oprav SVJ",
    )),
    ("cat_taxes", (
        "Financni urad", "Dan z prijmu", "Dan z nemovitosti", "VZP pojistne",
        "Ceska sprava socialniho zabezpeceni",
    )),
)

# Income lines rarely carry a merchant name, so they are listed verbatim.
_DEFAULT_INCOME_LINES = (
    "Mzda", "Vyplata mzdy", "Prichozi platba mzda", "Salary",
    "Odmena", "Vraceni preplatku dane", "Uroky z vkladu",
)


def default_samples() -> list[TrainingSample]:
    """Seed corpus so a fresh install gets a classifier signal before any history."""
    samples = [
        TrainingSample(text=template.format(merchant=merchant), category_id=category_id)
        for category_id, merchants in _DEFAULT_MERCHANTS
        for merchant in merchants
        for template in _TEMPLATES
    ]
    samples.extend(
        TrainingSample(text=line, category_id="cat_income") for line in _DEFAULT_INCOME_LINES
    )
    return samples
