"""
Synthetic Online Retail Dataset Generator
Writes a CSV shaped like the UK Online Retail export (InvoiceNo, StockCode,
Description, Quantity, InvoiceDate, UnitPrice, CustomerID, Country) for
local pipeline runs.
"""

import argparse
import random
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np
import polars as pl
from faker import Faker

fake = Faker("en_GB")
random.seed(42)
np.random.seed(42)
Faker.seed(42)

OUTPUT_FILE = Path(__file__).parent.parent / "data" / "raw" / "online_retail.csv"

COUNTRIES = ["United Kingdom", "Germany", "France", "EIRE", "Spain", "Netherlands", "Belgium"]
COUNTRY_WEIGHTS = [0.80, 0.05, 0.05, 0.04, 0.02, 0.02, 0.02]


# ==========================================
# CATALOGUE
# ==========================================
def generate_catalogue(n=800):
    print(f"📊 Generating {n:,} stock codes...")

    stock_codes = [f"{np.random.randint(10000, 99999)}{random.choice(['', 'A', 'B'])}" for _ in range(n)]
    return pl.DataFrame({
        "StockCode": stock_codes,
        "Description": [f"{fake.color_name().upper()} {fake.word().upper()} {random.choice(['HOLDER', 'MUG', 'BAG', 'SIGN', 'LANTERN'])}" for _ in range(n)],
        "UnitPrice": np.round(np.random.uniform(0.29, 15.0, n), 2),
    }).unique(subset=["StockCode"], keep="first")


# ==========================================
# INVOICE LINES - VECTORIZED
# ==========================================
def generate_lines(n_invoices=5000, n_customers=1500, catalogue=None):
    print(f"📊 Generating lines for {n_invoices:,} invoices...")

    customer_ids = np.arange(12346, 12346 + n_customers)
    customer_country = dict(zip(customer_ids, np.random.choice(COUNTRIES, n_customers, p=COUNTRY_WEIGHTS)))

    base_date = datetime(2010, 12, 1, 8, 0)
    lines_per_invoice = np.random.randint(1, 12, n_invoices)

    rows = []
    for index, line_count in enumerate(lines_per_invoice):
        invoice_no = str(536365 + index)
        if random.random() < 0.02:
            invoice_no = f"C{invoice_no}"  # cancellation
        invoice_date = base_date + timedelta(days=random.randint(0, 364), minutes=random.randint(0, 600))

        # About a quarter of the lines in the public dataset have no customer
        if random.random() < 0.25:
            customer_id = ""
            country = random.choice(COUNTRIES)
        else:
            customer_id = f"{random.choice(customer_ids)}.0"
            country = customer_country[int(float(customer_id))]

        picks = catalogue.sample(n=int(line_count), with_replacement=True, seed=index)
        for product in picks.iter_rows(named=True):
            quantity = random.randint(1, 24)
            if invoice_no.startswith("C"):
                quantity = -quantity
            rows.append({
                "InvoiceNo": invoice_no,
                "StockCode": product["StockCode"],
                "Description": product["Description"],
                "Quantity": quantity,
                "InvoiceDate": invoice_date.strftime("%m/%d/%Y %H:%M"),
                "UnitPrice": product["UnitPrice"],
                "CustomerID": customer_id,
                "Country": country,
            })

    return pl.DataFrame(rows)


# ==========================================
# MAIN
# ==========================================
def main():
    parser = argparse.ArgumentParser(description="Generate a synthetic Online Retail CSV")
    parser.add_argument("--invoices", type=int, default=5000)
    parser.add_argument("--customers", type=int, default=1500)
    parser.add_argument("--output", type=Path, default=OUTPUT_FILE)
    args = parser.parse_args()

    print("=" * 60)
    print("🛒 Online Retail Dataset Generator")
    print("=" * 60 + "\n")

    catalogue = generate_catalogue()
    lines = generate_lines(args.invoices, args.customers, catalogue)

    args.output.parent.mkdir(parents=True, exist_ok=True)
    lines.write_csv(args.output)

    size = args.output.stat().st_size / 1024 / 1024
    print(f"\n📁 Output: {args.output}")
    print(f"   📄 {len(lines):,} rows ({size:.2f} MB)")


if __name__ == "__main__":
    main()
