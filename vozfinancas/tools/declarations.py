"""
Tool declarations and the assistant's system prompt.

The four functions the live assistant may call, described once here and
translated into the vendor's schema by the session transport.
"""

from vozfinancas.models.expense import ParameterType, ToolDeclaration, ToolParameter


ADD_EXPENSE = "add_expense"
GET_EXPENSES = "get_expenses"
DELETE_EXPENSE = "delete_expense"
GET_SUMMARY = "get_summary"


TOOL_DECLARATIONS: list[ToolDeclaration] = [
    ToolDeclaration(
        name=ADD_EXPENSE,
        description="Adiciona um novo gasto.",
        parameters=[
            ToolParameter(
                name="amount",
                type=ParameterType.NUMBER,
                description="O valor do gasto",
            ),
            ToolParameter(
                name="description",
                type=ParameterType.STRING,
                description="O que foi comprado",
            ),
            ToolParameter(
                name="category",
                type=ParameterType.STRING,
                description="A categoria do gasto (ex: Alimentação, Transporte)",
            ),
        ],
    ),
    ToolDeclaration(
        name=GET_EXPENSES,
        description="Retorna a lista de gastos recentes.",
    ),
    ToolDeclaration(
        name=DELETE_EXPENSE,
        description="Remove um gasto pelo ID.",
        parameters=[
            ToolParameter(
                name="id",
                type=ParameterType.NUMBER,
                description="O ID do gasto a ser removido",
            ),
        ],
    ),
    ToolDeclaration(
        name=GET_SUMMARY,
        description="Retorna o resumo de gastos de hoje e por categoria.",
    ),
]


SYSTEM_PROMPT = """Você é um assistente financeiro pessoal brasileiro chamado VozFinanças.
Sua tarefa é ajudar o usuário a registrar e consultar gastos por voz.
Sempre responda em Português Brasileiro de forma amigável e concisa.
Confirme cada registro com uma frase como "Gasto de [valor] com [descrição] registrado com sucesso. Deseja algo mais?".

Ferramentas disponíveis:
- add_expense(amount: number, description: string, category: string): Adiciona um novo gasto.
- get_expenses(): Retorna a lista de gastos recentes.
- delete_expense(id: number): Remove um gasto pelo ID.
- get_summary(): Retorna o resumo de gastos de hoje e por categoria.

Se o usuário perguntar "Quanto gastei hoje?", use get_summary.
Se o usuário disser "Adicionar gasto de 25 reais com café", use add_expense.
Se o usuário quiser apagar algo, liste os gastos recentes e peça para confirmar qual ID apagar ou use a descrição se for única."""
