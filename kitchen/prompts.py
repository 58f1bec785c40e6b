from typing import Any

from kitchen.models import Recipe


ASSISTANT_PROMPT = """
You are Bhayia AI, a friendly Indian cooking assistant.
Always keep answers short, clear, and to the point.
Use bullet points or short sentences when needed.
Avoid unnecessary explanations or over-friendly tone.
Prioritize clarity and brevity. Be warm and helpful, but concise.
""".strip()


RECIPE_DETAILS = """
Title: {title}
Ingredients: {ingredients}
Steps: {steps}
Nutrition: {nutrition}
"""


QUESTION = """Here's the recipe:
{details}

Question: {question}"""


class RecipeQuestionPrompt:
    def __init__(self, recipe: Recipe | dict[str, Any], question: str) -> None:
        self.recipe = recipe.to_dict() if isinstance(recipe, Recipe) else recipe
        self.question = question

    @property
    def details(self) -> str:
        return RECIPE_DETAILS.format(
            title=self.recipe.get("title", ""),
            ingredients=", ".join(self.recipe.get("ingredients") or []),
            steps="\n".join(self.recipe.get("steps") or []),
            nutrition=self.recipe.get("nutritionalBenefits", ""),
        )

    def __str__(self) -> str:
        return QUESTION.format(details=self.details, question=self.question)


def suggested_questions(recipe: Recipe) -> list[str]:
    main = recipe.ingredients[0].split(" ")[-1] if recipe.ingredients else ""
    return [
        "How many calories in this?",
        "Portion for 3 people?",
        f"Any substitute for {main or 'main ingredient'}?",
        "Is this good for weight loss?",
        "How long does it take to cook?",
    ]
