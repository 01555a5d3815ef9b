"""
Profession Profiles
===================

Business context given to the AI service so it reads a team's documents
in the vocabulary of its trade. A medical practice calls its contracts
"Pacientes" and bills per consultation; an architecture office signs
project contracts with a fixed value. The entity model is the same for
every profession, only the prompt context changes.

The profile of an upload is the team's stored profession, else the
profession sent with the request, else ``Settings.default_profession``.
Unknown names fall back to the default profile.
"""

from dataclasses import dataclass

from setup_assistant.utils.logger import get_logger
from setup_assistant.utils.text import fold

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProfessionProfile:
    """
    Prompt context of one profession.

    Attributes:
        key: Identifier stored on the team (``arquitetura``, ``medicina``)
        profession_name: Human name of the profession
        business_type: Kind of business the documents come from
        summary: One sentence on how the business earns and spends
        revenue_description: What counts as a receivable
        expense_description: What counts as an expense
        contract_description: What a contract is in this trade
        contracts_term: User-facing word for contracts
        client_term: User-facing word for the client name column
        project_term: User-facing word for the project name column
        total_value_term: User-facing word for the contract value
        signed_date_term: User-facing word for the contract date
    """

    key: str
    profession_name: str
    business_type: str
    summary: str
    revenue_description: str
    expense_description: str
    contract_description: str
    contracts_term: str
    client_term: str
    project_term: str
    total_value_term: str
    signed_date_term: str


ARQUITETURA = ProfessionProfile(
    key="arquitetura",
    profession_name="Arquitetura",
    business_type="an architecture and design office",
    summary="Project contracts with a fixed value, paid in installments over the life of the project.",
    revenue_description=(
        "Receivables are contract installments, design fees, construction measurements "
        "(medições) and supplier commissions (RT)."
    ),
    expense_description=(
        "Expenses are office costs, salaries, software, consultants and materials "
        "the office pays for."
    ),
    contract_description=(
        "Contracts are projects closed with a client: architecture, interiors, "
        "landscaping or construction management."
    ),
    contracts_term="Contratos",
    client_term="Nome do Cliente",
    project_term="Nome do Projeto",
    total_value_term="Valor Total do Contrato",
    signed_date_term="Data de Assinatura",
)

MEDICINA = ProfessionProfile(
    key="medicina",
    profession_name="Medicina",
    business_type="a medical practice or clinic",
    summary="Ongoing patient relationships billed per consultation or procedure.",
    revenue_description=(
        "Receivables are fees for consultations and procedures, paid by the patient "
        "or by a health insurer."
    ),
    expense_description=(
        "Expenses are operating costs of the practice or clinic: rent, staff, "
        "medical supplies and equipment."
    ),
    contract_description=(
        "Contracts are PATIENTS under treatment or follow-up. The value is the average "
        "fee per consultation and the date is the first consultation; there is no formal signature."
    ),
    contracts_term="Pacientes",
    client_term="Nome do Paciente",
    project_term="Nome do Paciente",
    total_value_term="Valor Médio por Consulta",
    signed_date_term="Data da Primeira Consulta",
)

PROFESSIONS: dict[str, ProfessionProfile] = {
    ARQUITETURA.key: ARQUITETURA,
    MEDICINA.key: MEDICINA,
}

# Related trades read their documents like architects do
ALIASES: dict[str, str] = {
    "architecture": "arquitetura",
    "engenharia-civil": "arquitetura",
    "design-interiores": "arquitetura",
    "paisagismo": "arquitetura",
    "urbanismo": "arquitetura",
    "medicine": "medicina",
}

DEFAULT_PROFESSION = ARQUITETURA.key


def get_profession(name: str | None, default: str = DEFAULT_PROFESSION) -> ProfessionProfile:
    """Profile for ``name``; unknown or empty names get the ``default`` profile."""
    key = fold(name or "").replace(" ", "-")
    key = ALIASES.get(key, key)
    profile = PROFESSIONS.get(key)
    if profile is None:
        if key:
            logger.info("professions.unknown_profession", profession=name, fallback=default)
        return PROFESSIONS.get(default, ARQUITETURA)
    return profile
