"""
AI Prompt Templates
===================

Instruction templates sent to the AI document-understanding service.

Two prompts are used:
1. ``TABLE_CLASSIFICATION_PROMPT`` - one call per segmented table; the
   table is summarized by its headers and a sample of data rows and the
   service answers with entity kinds plus a column mapping.
2. ``VISION_EXTRACTION_PROMPT`` - one call per PDF/image; the whole
   document is attached and the service answers with entity arrays.

Both prompts carry the business context of the team's profession
(``professions.ProfessionProfile``).

Field names are camelCase on the AI side; the classifier and the vision
extractor translate them to draft fields. Values are formatted with
``str.format`` so literal JSON braces in the templates are doubled.
"""

import json
from typing import Any

from setup_assistant.schemas.domain import EntityKind
from setup_assistant.services.professions import ProfessionProfile, get_profession

# =============================================================================
# SYSTEM PROMPT
# =============================================================================

SYSTEM_PROMPT = """You are an expert in Brazilian financial spreadsheets and documents of professional-services businesses (architects, doctors, lawyers, engineers).

You identify three kinds of financial records:
- contracts: engagements/projects closed with a client (money agreed)
- receivables: money the business expects to receive (installments, fees, invoices issued)
- expenses: money the business pays out (bills, suppliers, operating costs)

Values follow Brazilian conventions: "R$ 1.234,56" means 1234.56 and dates are day-first (15/09/2024).
Answer with a single JSON object and nothing else."""

# =============================================================================
# ENTITY SCHEMAS
# =============================================================================

ENTITY_SCHEMAS: dict[EntityKind, str] = {
    EntityKind.CONTRACTS: """CONTRACTS:
- clientName: text - client name
- projectName: text - project/engagement name
- totalValue: currency - total contract value
- signedDate: date - signature date
- status: status (active, completed, paused, cancelled)
- description: text
- category: text - project category
- notes: text""",
    EntityKind.RECEIVABLES: """RECEIVABLES:
- contractId: text - reference to the contract/project (name or id)
- clientName: text - who pays
- expectedDate: date - expected receipt date
- amount: currency - installment value
- status: status (pending, received, overdue, cancelled)
- receivedDate: date - actual receipt date
- receivedAmount: currency - amount actually received
- description: text
- category: text
- invoiceNumber: text""",
    EntityKind.EXPENSES: """EXPENSES:
- description: text - what was paid
- amount: currency
- dueDate: date - due date
- category: text
- status: status (pending, paid, overdue, cancelled)
- paidDate: date
- paidAmount: currency
- vendor: text - supplier
- invoiceNumber: text
- contractId: text - related contract/project
- notes: text""",
}

# =============================================================================
# TABLE CLASSIFICATION
# =============================================================================

TABLE_CLASSIFICATION_PROMPT = """Analyze the table below and map it to our financial entities.

TABLE:
- File: "{file_name}"
- Sheet: "{sheet_name}"
- Table: "{table_name}" ({row_count} data rows)

COLUMN HEADERS:
{headers}

SAMPLE ROWS (first {sample_size} data rows, as JSON objects keyed by header):
{sample_rows}
{profession_section}{hint_section}
ENTITY SCHEMAS (use these exact field names):

{schemas}

TRANSFORMS:
- "date": dates in any format
- "currency": monetary values
- "status": status words (Pendente, Pago, Recebido, Ativo...)
- "enum": fixed categorical values (list them in enumValues)
- "text": plain text
- "number": non-monetary numbers (installment number...)

RULES:
1. entityKinds lists every kind this table holds. Use [] for instructions, legends, totals or non-financial data.
2. If each row carries data for several kinds (e.g. a contract row with payment columns), list all of them and map each column to the kind it belongs to.
3. If a column tells which kind each row is (e.g. "Tipo" = "Receita"/"Despesa"), set discriminatorColumn to that header and discriminatorValues to a value → kind object.
4. Keys of columnMapping must be EXACTLY the headers shown above (case-sensitive).
5. Map each schema field from at most one column, except "description".
6. A column used by several kinds (e.g. "Valor" in a table routed by discriminatorColumn) maps to a list with one mapping per kind.

OUTPUT FORMAT (JSON only):
{{
  "entityKinds": ["contracts" | "receivables" | "expenses"],
  "columnMapping": {{
    "Exact Header": {{"entity": "receivables", "field": "amount", "transform": "currency", "enumValues": []}}
  }},
  "discriminatorColumn": null,
  "discriminatorValues": {{}},
  "reasoning": "one short sentence"
}}"""

# =============================================================================
# VISION EXTRACTION
# =============================================================================

VISION_EXTRACTION_PROMPT = """Extract EVERY financial entity found in the attached document ("{file_name}").
{profession_section}{hint_section}
First decide what the document is:
- "proposal": a proposal or quote sent to a client
- "contract": a signed agreement with a client
- "invoice": an invoice/bill to be paid by the business
- "receipt": a receipt of something the business paid
- "other": anything else

Payment terms: set paymentTermsExplicit to true only when the document states how and when the client pays (down payment, number of installments, due dates). When explicit, compute each installment (value and date) without assuming anything the document does not say.

ENTITY SCHEMAS:

{schemas}

Dates in ISO-8601 (YYYY-MM-DD). Monetary values as numbers without currency symbols. Use null for unknown optional fields.

OUTPUT FORMAT (JSON only):
{{
  "documentType": "proposal" | "contract" | "invoice" | "receipt" | "other",
  "paymentTermsExplicit": true | false,
  "contracts": [],
  "receivables": [],
  "expenses": []
}}"""


def _profession_section(profession: ProfessionProfile | None) -> str:
    profile = profession or get_profession(None)
    return (
        f"\nBUSINESS CONTEXT ({profile.profession_name.upper()}):\n"
        f"The documents come from {profile.business_type}. {profile.summary}\n"
        f"- contracts (\"{profile.contracts_term}\"): {profile.contract_description}\n"
        f"  Typical columns: \"{profile.client_term}\", \"{profile.project_term}\", "
        f"\"{profile.total_value_term}\", \"{profile.signed_date_term}\"\n"
        f"- receivables: {profile.revenue_description}\n"
        f"- expenses: {profile.expense_description}\n"
    )


def _hint_section(entity_hint: EntityKind | None, guidance: str | None) -> str:
    lines = []
    if entity_hint is not None:
        lines.append(f"The user says this file contains {entity_hint.value}.")
    if guidance and guidance.strip():
        lines.append(f"User guidance: {guidance.strip()}")
    if not lines:
        return ""
    return "\nUSER CONTEXT:\n" + "\n".join(lines) + "\n"


def get_table_classification_prompt(
    file_name: str,
    sheet_name: str,
    table_name: str,
    headers: list[str],
    sample_rows: list[dict[str, Any]],
    row_count: int,
    entity_hint: EntityKind | None = None,
    guidance: str | None = None,
    profession: ProfessionProfile | None = None,
) -> str:
    """
    Render the table classification prompt.

    Args:
        headers: Table headers, in column order
        sample_rows: First data rows as header → value records
        row_count: Total data rows of the table
        entity_hint: Entity kind the user expects, if any
        guidance: Free-text user guidance, if any
        profession: Business context of the team (default profile if None)

    Returns:
        Prompt text
    """
    return TABLE_CLASSIFICATION_PROMPT.format(
        file_name=file_name,
        sheet_name=sheet_name,
        table_name=table_name,
        row_count=row_count,
        headers=json.dumps(headers, ensure_ascii=False),
        sample_size=len(sample_rows),
        sample_rows="\n".join(json.dumps(row, ensure_ascii=False, default=str) for row in sample_rows),
        profession_section=_profession_section(profession),
        hint_section=_hint_section(entity_hint, guidance),
        schemas="\n\n".join(ENTITY_SCHEMAS.values()),
    )


def get_vision_extraction_prompt(
    file_name: str,
    entity_hint: EntityKind | None = None,
    guidance: str | None = None,
    profession: ProfessionProfile | None = None,
) -> str:
    """Render the vision extraction prompt."""
    return VISION_EXTRACTION_PROMPT.format(
        file_name=file_name,
        profession_section=_profession_section(profession),
        hint_section=_hint_section(entity_hint, guidance),
        schemas="\n\n".join(ENTITY_SCHEMAS.values()),
    )
