"""Mock storefront data for the Beetle Bazaar.

The Beetle Bazaar is a fictional shop run by insects. Its product pages
are deliberately inconsistent: three page layouts mark up the same fields
differently, sale banners are sometimes malformed, and one product page is
missing its title. Every fallback path of the extraction engine is
exercised by some product.

The same pages are served two ways: as a dict for StaticPageSource and by
an aiohttp app for HttpPageSource.
"""

import asyncio
import json
from dataclasses import dataclass

from aiohttp import web


@dataclass
class MockProduct:
    """A product in the Beetle Bazaar."""

    sku: str
    title: str | None
    price: str
    original_price: str | None = None
    images: tuple[str, ...] = ()
    # "testid": data-testid attributes, "classy": class names only,
    # "bare": no hooks beyond page structure
    layout: str = "testid"


PRODUCTS: list[MockProduct] = [
    MockProduct(
        sku="BB-001",
        title="Dew Collector Deluxe",
        price="$1,234.56",
        images=("/img/bb-001-a.jpg", "//cdn.beetle.example/bb-001-b.jpg"),
    ),
    MockProduct(
        sku="BB-002",
        title="Leaf Hammock",
        price="$50.00",
        original_price="$100.00",
        layout="classy",
    ),
    MockProduct(
        sku="BB-003",
        title="Acorn Cap Helmet",
        price="€ 99,99",
        layout="bare",
    ),
    MockProduct(
        sku="BB-004",
        title="Silk Thread Spool",
        price="$50.00",
        original_price="$40.00",
        layout="classy",
    ),
    MockProduct(
        sku="BB-005",
        title=None,
        price="$12.00",
    ),
    MockProduct(
        sku="BB-006",
        title="Pollen Snack Pack",
        price="1.234,56 €",
        images=("/img/bb-006-a.jpg", "/img/bb-006-a.jpg#zoom"),
    ),
]


def make_products(count: int, prefix: str = "GEN") -> list[MockProduct]:
    """Generate ``count`` well-formed products cycling through layouts."""
    layouts = ("testid", "classy", "bare")
    return [
        MockProduct(
            sku=f"{prefix}-{i:03d}",
            title=f"Generated Gadget {i}",
            price=f"${i}.99",
            layout=layouts[i % len(layouts)],
        )
        for i in range(1, count + 1)
    ]


def product_path(product: MockProduct) -> str:
    return f"/products/{product.sku}"


def generate_listing_html(
    products: list[MockProduct], host: str = "shop.example"
) -> str:
    """Generate the product listing page.

    Links alternate between root-relative, absolute and protocol-relative
    forms; the first product is linked twice (card and promo banner).
    """
    cards = []
    for i, product in enumerate(products):
        path = product_path(product)
        match i % 3:
            case 0:
                href = path
            case 1:
                href = f"http://{host}{path}"
            case _:
                href = f"//{host}{path}"
        cards.append(
            f"""
        <article class="product-card" data-testid="product-card">
            <a class="product-link" href="{href}">{product.title or product.sku}</a>
        </article>"""
        )

    promo = ""
    if products:
        promo = (
            f'<div class="promo"><a class="product-link" '
            f'href="{product_path(products[0])}#promo">Deal of the day</a></div>'
        )

    return f"""<!DOCTYPE html>
<html>
<head><title>Beetle Bazaar - All Products</title></head>
<body>
    <div id="cookie-banner" class="consent">
        <p>We use crumbs.</p>
        <button type="button">Accept all</button>
    </div>
    <main>
        <h1>All Products</h1>
        {promo}
        <section class="product-grid">{"".join(cards)}
        </section>
    </main>
</body>
</html>"""


def _title_html(product: MockProduct) -> str:
    if product.title is None:
        return ""
    match product.layout:
        case "testid":
            return f'<h1 data-testid="product-title">{product.title}</h1>'
        case "classy":
            return f'<h1 class="product-title main">{product.title}</h1>'
        case _:
            return f"<h1>{product.title}</h1>"


def _price_html(product: MockProduct) -> str:
    match product.layout:
        case "testid":
            html = f'<span data-testid="price">{product.price}</span>'
            if product.original_price:
                html += (
                    f'<span data-testid="original-price">'
                    f"{product.original_price}</span>"
                )
        case "classy":
            html = ""
            if product.original_price:
                html += (
                    f'<span class="price price-original">'
                    f"{product.original_price}</span>"
                )
            html += f'<span class="price price-current">{product.price}</span>'
        case _:
            html = f"<span>{product.price}</span>"
    return f'<div class="buy-box">{html}</div>'


def generate_product_html(product: MockProduct) -> str:
    """Generate a product detail page in the product's layout."""
    images = "".join(
        f'<img data-testid="gallery-image" src="{src}" alt="">'
        for src in product.images
    )
    return f"""<!DOCTYPE html>
<html>
<head><title>{product.title or "Untitled"} - Beetle Bazaar</title></head>
<body>
    <nav><h2>Beetle Bazaar</h2></nav>
    <main>
        {_title_html(product)}
        {_price_html(product)}
        <div class="gallery">{images}</div>
        <p class="sku">SKU {product.sku}</p>
    </main>
</body>
</html>"""


def build_static_site(
    products: list[MockProduct],
    base_url: str = "http://shop.example",
    listing_path: str = "/products",
) -> dict[str, str]:
    """Pages keyed by absolute URL, for StaticPageSource."""
    host = base_url.split("://", 1)[1]
    pages = {f"{base_url}{listing_path}": generate_listing_html(products, host)}
    for product in products:
        pages[f"{base_url}{product_path(product)}"] = generate_product_html(
            product
        )
    return pages


def generate_dynamic_listing_html(
    products: list[MockProduct], batch: int = 2
) -> str:
    """A listing that reveals ``batch`` more products per "Load More" click.

    The button is removed once every product is shown. Clicks resolve after
    a short delay, like a real XHR-backed control.
    """
    items = json.dumps(
        [
            {"href": product_path(p), "title": p.title or p.sku}
            for p in products
        ]
    )
    return f"""<!DOCTYPE html>
<html>
<head><title>Beetle Bazaar - New Arrivals</title></head>
<body>
    <main>
        <section id="grid"></section>
        <button type="button" class="load-more-btn">Load More</button>
    </main>
    <script>
        const items = {items};
        let shown = {batch};
        const grid = document.getElementById("grid");
        const button = document.querySelector(".load-more-btn");
        function render() {{
            grid.innerHTML = items.slice(0, shown).map(item =>
                `<article data-testid="product-card">` +
                `<a class="product-link" href="${{item.href}}">${{item.title}}</a>` +
                `</article>`
            ).join("");
        }}
        button.addEventListener("click", () => {{
            setTimeout(() => {{
                shown += {batch};
                render();
                if (shown >= items.length) button.remove();
            }}, 50);
        }});
        render();
    </script>
</body>
</html>"""


def get_product(sku: str) -> MockProduct | None:
    for product in PRODUCTS:
        if product.sku == sku:
            return product
    return None


# =============================================================================
# aiohttp handlers
# =============================================================================


async def handle_listing(request: web.Request) -> web.Response:
    return web.Response(
        text=generate_listing_html(PRODUCTS, request.host),
        content_type="text/html",
    )


async def handle_product(request: web.Request) -> web.Response:
    product = get_product(request.match_info["sku"])
    if product is None:
        return web.Response(
            text="<html><body><h1>Not Found</h1></body></html>",
            status=404,
            content_type="text/html",
        )
    return web.Response(
        text=generate_product_html(product), content_type="text/html"
    )


async def handle_dynamic_listing(request: web.Request) -> web.Response:
    return web.Response(
        text=generate_dynamic_listing_html(PRODUCTS), content_type="text/html"
    )


async def handle_server_error(request: web.Request) -> web.Response:
    return web.Response(text="Internal Server Error", status=503)


async def handle_slow(request: web.Request) -> web.Response:
    await asyncio.sleep(2.0)
    return web.Response(text="<html><body>late</body></html>")


async def handle_redirect(request: web.Request) -> web.Response:
    raise web.HTTPFound("/products/BB-001")


def create_app() -> web.Application:
    """Create the aiohttp application serving the Beetle Bazaar."""
    app = web.Application()
    app.router.add_get("/products", handle_listing)
    app.router.add_get("/products/{sku}", handle_product)
    app.router.add_get("/new-arrivals", handle_dynamic_listing)
    app.router.add_get("/broken", handle_server_error)
    app.router.add_get("/slow", handle_slow)
    app.router.add_get("/old-product", handle_redirect)
    return app
