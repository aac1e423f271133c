from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Tuple


BASE_INSTRUCTIONS = """
You are DataPrivacy AI, a marketing assistant specialising in data privacy,
data security and regulatory compliance (GDPR, CCPA, HIPAA and similar).

Answer directly and concisely. Do not add filler content and never refer to
yourself or your experience. Use professional terminology only.

Never suggest unethical or illegal handling, collection or processing of
data. If asked for illegal activity, reply: "Unfortunately, that is illegal,
please try again." If asked about anything outside data privacy, security,
compliance or related industries, reply: "Unfortunately, that is above my
pay grade. Let's try again."

Take regional and cultural differences into account: privacy messaging that
works under GDPR in Europe may need a different approach under CCPA in
California, and audiences in different US regions respond differently.
""".strip()

HTML_OUTPUT_RULES = """
Give the output as HTML laid out in clear sections. Use h1-h5 for headings,
<p> for paragraphs, <ul>/<li> for bullet points, <table> for tables, <br> for
line breaks and <strong> for emphasis.
""".strip()


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    title: str
    fields: Tuple[str, ...]
    system_instructions: str
    prompt: Callable[[Mapping[str, str]], str]

    def render(self, values: Mapping[str, str]) -> Tuple[str, str]:
        """Return (system instructions, user prompt) for the given field values."""
        missing = [f for f in self.fields if not (values.get(f) or "").strip()]
        if missing:
            raise ValueError(f"missing fields for {self.name}: {', '.join(missing)}")
        cleaned = {f: values[f].strip() for f in self.fields}
        return self.system_instructions, self.prompt(cleaned)

    def describe_input(self, values: Mapping[str, str]) -> str:
        # The history table keeps the first field as the record's "type"
        return (values.get(self.fields[0]) or "").strip()


def _marketing_plan(values: Mapping[str, str]) -> str:
    return f"""
Act like a data privacy marketing expert and manager. Create a marketing plan
for {values['company']} whose main goal is to drive {values['goal']}. Focus on
{values['focus']} generation, in English. Use headings and bullet points and
lay it out in sections that can be pasted into a word processor.

Our Objective - state the objective of the marketing plan.
To Achieve This Objective - outline the steps to achieve it.
Company initiative - describe the company initiative.
Initiatives - at most 3 initiatives needed to reach the objective, each with
its description, goal and success metrics.
Marketing strategy - a short paragraph on the best strategy.

The plan has three phases:
1. Attracting the right audience: target market with a short avatar; 3 to 6
   emotional and 2 external pain points; 5 desired gains; value proposition;
   products and services; a Hero's Journey story; a campaign narrative; the
   best channels to reach the audience.
2. Nurturing the sale: 5 lead magnet ideas (at least 3 PDFs); an
   infrastructure checklist (lead capture pages, newsletters, blogs,
   follow-up process, social profiles, autoresponders, opt-in sequence,
   complaints, remarketing pixels, review system, asset review); 5 to 10
   KPIs; a step-by-step traffic plan; the sales funnel flow for free traffic;
   a website trust checklist; a pricing strategy with suggested prices.
3. After sales: 5 upsell ideas, 5 recurring-revenue ideas and a referral
   strategy.

Finish with a month-by-month action plan for 12 months.
""".strip()


def _product_description(values: Mapping[str, str]) -> str:
    return f"""
Write a compelling, SEO-optimised product description for the following
product. Highlight its data privacy and security benefits, include five
relevant keywords and close with a short call to action.

Product: {values['product']}
""".strip()


TEMPLATES: Dict[str, PromptTemplate] = {
    "marketing-plan": PromptTemplate(
        name="marketing-plan",
        title="Marketing Plan",
        fields=("company", "goal", "focus"),
        system_instructions=f"{BASE_INSTRUCTIONS}\n\n{HTML_OUTPUT_RULES}",
        prompt=_marketing_plan,
    ),
    "product-description": PromptTemplate(
        name="product-description",
        title="Product Description",
        fields=("product",),
        system_instructions=f"{BASE_INSTRUCTIONS}\n\n{HTML_OUTPUT_RULES}",
        prompt=_product_description,
    ),
}


def get_template(name: str) -> PromptTemplate:
    try:
        return TEMPLATES[name]
    except KeyError:
        raise KeyError(f"unknown template: {name}") from None


def list_templates() -> List[PromptTemplate]:
    return list(TEMPLATES.values())
