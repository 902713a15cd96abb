import os
import uuid
from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd

from donations.models import SHELF_LIFE_HOURS, DonationStatus, FoodCategory, PickupStatus

# Center around Harare, Zimbabwe
CENTER_LAT = -17.824858
CENTER_LON = 31.053028

FOOD_TYPES = {
    FoodCategory.COOKED_MEAL: ["Rice and stew", "Sadza and beans", "Vegetable curry"],
    FoodCategory.RAW_INGREDIENTS: ["Tomatoes", "Onions", "Maize meal"],
    FoodCategory.PACKAGED: ["Biscuits", "Canned beans", "Cereal boxes"],
    FoodCategory.BAKERY: ["Bread loaves", "Buns", "Muffins"],
    FoodCategory.BEVERAGES: ["Juice packs", "Bottled water"],
    FoodCategory.MIXED: ["Event leftovers", "Buffet trays"],
}


def generate_organizations(rng, num_organizations=40):
    """
    NGOs spread over ~10km around the center, most active and verified.
    """
    rows = []
    for index in range(num_organizations):
        rows.append({
            "organization_id": f"ngo_{str(index + 1).zfill(3)}",
            "name": f"Community Kitchen {index + 1}",
            "lat": np.round(CENTER_LAT + rng.uniform(-0.09, 0.09), 6),
            "lon": np.round(CENTER_LON + rng.uniform(-0.09, 0.09), 6),
            "is_active": bool(rng.random() < 0.9),
            "is_verified": bool(rng.random() < 0.85),
            "reliability_score": int(np.clip(rng.normal(60, 15), 0, 100)),
        })
    return pd.DataFrame(rows)


def generate_donations(rng, now, num_donations=200, num_donors=25):
    """
    Donations from a fixed set of donors (so several come from the same spot).
    About 10% are already Accepted and stale, to give the reassignment sweep work.
    """
    donors = [
        {
            "donor_id": f"d_{str(uuid.uuid4())[:8]}",
            "lat": CENTER_LAT + rng.uniform(-0.06, 0.06),
            "lon": CENTER_LON + rng.uniform(-0.06, 0.06),
        }
        for _ in range(num_donors)
    ]
    categories = list(FoodCategory)

    rows = []
    for index in range(num_donations):
        donor = donors[rng.integers(len(donors))]
        category = categories[rng.integers(len(categories))]
        max_hours = SHELF_LIFE_HOURS[category]

        prepared_at = now - timedelta(minutes=int(rng.integers(0, 60)))
        # Somewhere between 45 minutes from now and the end of the shelf life.
        latest = prepared_at + timedelta(hours=max_hours)
        earliest = now + timedelta(minutes=45)
        span = max((latest - earliest).total_seconds(), 0)
        expiry_time = earliest + timedelta(seconds=float(rng.uniform(0, span)))
        pickup_deadline = expiry_time - timedelta(minutes=int(rng.integers(0, 30)))

        stale = rng.random() < 0.1
        rows.append({
            "donation_id": f"don_{str(index + 1).zfill(6)}",
            "donor_id": donor["donor_id"],
            "food_type": rng.choice(FOOD_TYPES[category]),
            "category": category.value,
            "quantity": int(rng.integers(5, 120)),
            "unit": "servings",
            "lat": np.round(donor["lat"], 6),
            "lon": np.round(donor["lon"], 6),
            "prepared_at": prepared_at.isoformat(),
            "expiry_time": expiry_time.isoformat(),
            "pickup_deadline": max(pickup_deadline, now + timedelta(minutes=31)).isoformat(),
            "status": (DonationStatus.ACCEPTED if stale else DonationStatus.AVAILABLE).value,
            "accepted_at": (now - timedelta(minutes=int(rng.integers(21, 40)))).isoformat() if stale else "",
        })
    return pd.DataFrame(rows)


def generate_pickup_history(rng, now, organization_ids, max_logs_per_organization=25):
    """
    Past engagements per NGO. Each NGO gets its own delivery propensity so the
    reliability spread is realistic (a few great ones, a few flaky ones).
    """
    rows = []
    for organization_id in organization_ids:
        propensity = rng.beta(5, 2)
        for _ in range(int(rng.integers(0, max_logs_per_organization + 1))):
            accepted_at = now - timedelta(days=float(rng.uniform(1, 30)))
            response_mins = float(rng.gamma(2.0, 9.0))

            roll = rng.random()
            if roll < propensity:
                status = PickupStatus.DELIVERED
            elif roll < propensity + (1 - propensity) * 0.2:
                status = PickupStatus.PICKED_UP
            else:
                status = PickupStatus.FAILED

            pickup_time = accepted_at + timedelta(minutes=response_mins) if status != PickupStatus.FAILED else None
            delivery_time = (
                pickup_time + timedelta(minutes=float(rng.uniform(10, 60)))
                if status == PickupStatus.DELIVERED
                else None
            )
            rows.append({
                "log_id": str(uuid.uuid4()),
                "organization_id": organization_id,
                "accepted_at": accepted_at.isoformat(),
                "pickup_time": pickup_time.isoformat() if pickup_time else "",
                "delivery_time": delivery_time.isoformat() if delivery_time else "",
                "beneficiary_count": int(rng.integers(5, 150)) if status == PickupStatus.DELIVERED else 0,
                "status": status.value,
            })
    return pd.DataFrame(rows)


def generate_mock_data(output_dir="sampledata", num_organizations=40, num_donations=200, seed=None):
    rng = np.random.default_rng(seed)
    now = datetime.now(timezone.utc)
    os.makedirs(output_dir, exist_ok=True)

    organizations = generate_organizations(rng, num_organizations)
    donations = generate_donations(rng, now, num_donations)
    history = generate_pickup_history(rng, now, organizations["organization_id"].tolist())

    organizations.to_csv(os.path.join(output_dir, "organizations.csv"), index=False)
    donations.to_csv(os.path.join(output_dir, "donations.csv"), index=False)
    history.to_csv(os.path.join(output_dir, "pickup_logs.csv"), index=False)

    print(f"✅ Generated {len(organizations)} organizations, {len(donations)} donations "
          f"and {len(history)} pickup logs in '{output_dir}/'")

    print("\nDonations by category:")
    for category, count in donations["category"].value_counts().items():
        print(f"  {category}: {count}")

    if not history.empty:
        print("\nHistorical outcomes:")
        for status, count in history["status"].value_counts().items():
            print(f"  {status}: {count}")


if __name__ == "__main__":
    generate_mock_data(num_organizations=40, num_donations=200)
