import os

from jinja2 import Environment, FileSystemLoader, select_autoescape

from coauthor.config import settings

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")


def rupees(amount) -> str:
    """9000 -> '₹9,000'. Amounts are whole rupees."""
    if amount is None:
        return ""
    return f"₹{int(amount):,}"


env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(["html"]),
)
env.filters["rupees"] = rupees
env.globals["store_name"] = settings.STORE_NAME
env.globals["frontend_url"] = settings.FRONTEND_URL


def render_template(template_path: str, **context) -> str:
    return env.get_template(template_path).render(**context)
