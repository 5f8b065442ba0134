# cart_session/api/routers/carts.py
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from cart_session.api.tokens import cart_token, token_headers
from cart_session.data.database import get_db
from cart_session.domain.errors import (
    CatalogUnavailable,
    ItemNotFound,
    ProductNotFound,
    SessionNotFound,
    StorageUnavailable,
)
from cart_session.domain.schemas import AddItemIn, CartOut, ItemRefIn
from cart_session.services.cart_service import CartService
from cart_session.services.product_client import ProductClient
from cart_session.services.token_codec import TokenCodec, build_token_config

router = APIRouter(prefix="/cart", tags=["cart"])


def get_product_client() -> ProductClient:
    return ProductClient()


@lru_cache
def get_token_codec() -> TokenCodec:
    return TokenCodec(build_token_config())


def get_service(
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
    codec: TokenCodec = Depends(get_token_codec),
) -> CartService:
    return CartService(db=db, product_client=product_client, codec=codec)


def _run(response: Response, call: Callable[..., Dict[str, Any]], *args, **kwargs) -> Dict[str, Any]:
    """Run a service call, map errors to HTTP and echo the token in use."""
    try:
        out = call(*args, **kwargs)
    except (ProductNotFound, ItemNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e), headers=token_headers(e.token))
    except CatalogUnavailable as e:
        raise HTTPException(status_code=502, detail="Product service unavailable",
                            headers=token_headers(getattr(e, "token", None)))
    except SessionNotFound as e:
        # row vanished between load and save (checkout or reaper)
        raise HTTPException(status_code=409, detail="Cart session no longer exists, retry the request",
                            headers=token_headers(getattr(e, "token", None)))
    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail="Cart storage unavailable",
                            headers=token_headers(getattr(e, "token", None)))

    response.headers.update(token_headers(out["token"]))
    return out


@router.get("", response_model=CartOut)
def get_cart(
    response: Response,
    token: Optional[str] = Depends(cart_token),
    svc: CartService = Depends(get_service),
):
    """Create or restore a cart session and return its contents."""
    return _run(response, svc.get_cart, token)


@router.patch("", response_model=CartOut)
def update_cart(
    response: Response,
    updates: Dict[str, Any] = Body(..., examples=[{"3f2a...": 2}]),
    token: Optional[str] = Depends(cart_token),
    svc: CartService = Depends(get_service),
):
    """Batch update quantities by line key. Unknown keys are ignored."""
    return _run(response, svc.batch_update, token, updates)


@router.delete("", response_model=CartOut)
def clear_cart(
    response: Response,
    token: Optional[str] = Depends(cart_token),
    svc: CartService = Depends(get_service),
):
    return _run(response, svc.clear_cart, token)


@router.post("/clear", response_model=CartOut)
def clear_cart_post(
    response: Response,
    token: Optional[str] = Depends(cart_token),
    svc: CartService = Depends(get_service),
):
    """Alias of DELETE /cart for clients that only send POST."""
    return _run(response, svc.clear_cart, token)


@router.post("/add", response_model=CartOut)
def add_to_cart(
    payload: AddItemIn,
    response: Response,
    token: Optional[str] = Depends(cart_token),
    svc: CartService = Depends(get_service),
):
    if payload.target_id <= 0:
        raise HTTPException(status_code=400, detail="Missing or invalid product ID")

    out = _run(
        response,
        svc.add_item,
        token,
        product_id=payload.target_id,
        quantity=payload.quantity,
        variation_id=payload.variation_id,
        options=payload.options,
    )
    # 201 when this put the first line into the cart
    if out.pop("created", False):
        response.status_code = 201
    return out


@router.post("/remove-item", response_model=CartOut)
def remove_item(
    payload: ItemRefIn,
    response: Response,
    token: Optional[str] = Depends(cart_token),
    svc: CartService = Depends(get_service),
):
    return _run(response, svc.remove_item, token, key=payload.key, product_id=payload.id)


@router.post("/add-one", response_model=CartOut)
def add_one(
    payload: ItemRefIn,
    response: Response,
    token: Optional[str] = Depends(cart_token),
    svc: CartService = Depends(get_service),
):
    return _run(response, svc.increment_item, token, key=payload.key, product_id=payload.id)


@router.post("/remove-one", response_model=CartOut)
def remove_one(
    payload: ItemRefIn,
    response: Response,
    token: Optional[str] = Depends(cart_token),
    svc: CartService = Depends(get_service),
):
    """Decrement a line by one, removing it when it would reach zero."""
    return _run(response, svc.decrement_item, token, key=payload.key, product_id=payload.id)
