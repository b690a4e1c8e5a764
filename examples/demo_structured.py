"""
Demo: Structured Extraction
Run: python examples/demo_structured.py

The same pydantic model works against every provider. Replies that drift
from the requested schema (camelCase keys, flattened objects) are still
hydrated into the model.
"""
import os
from typing import List, Literal, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from polyllm import Client, SchemaValidationMismatch

load_dotenv()

INVOICE_TEXT = """
ACME GmbH, Berlin. Invoice 2024-117 for 3 widgets and 1 gizmo.
Total due: 1,250.00 EUR. 2% discount (25.00 EUR) if paid within 10 days.
"""


class Money(BaseModel):
    amount: float
    currency: str


class Invoice(BaseModel):
    """An invoice extracted from free text."""
    number: str
    vendor: str
    status: Literal["open", "paid"] = "open"
    total: Money
    early_payment_discount: Optional[Money] = Field(None, description="Discount for early payment, if any")
    items: List[str] = Field(default_factory=list)


def main():
    client = Client()
    models = [
        ("gpt-4o-mini", "OPENAI_API_KEY"),
        ("claude-3-5-haiku-latest", "ANTHROPIC_API_KEY"),
        ("gemini-1.5-flash", "GEMINI_API_KEY"),
    ]
    for model, env in models:
        if not os.getenv(env):
            print(f"Skipping {model}: set {env} in .env")
            continue
        try:
            result = client.chat(model).generate_object(f"Extract the invoice:\n{INVOICE_TEXT}", Invoice)
        except SchemaValidationMismatch as e:
            print(f"{model}: could not build Invoice, missing {e.missing_fields}")
            continue
        print(f"{model}: {result.object.model_dump_json(indent=2)}")


if __name__ == "__main__":
    main()
