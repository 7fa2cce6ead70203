# ==============================================================================
# Element Locator
# ==============================================================================


async def locate(root, selectors):
    """
    Returns the first element matching one of `selectors`, tried strictly
    in order. `root` is a PageDom or a DomElement.
    A lookup that raises (bad selector, detached frame) counts as no match
    and the next selector is tried.
    """
    for selector in selectors:
        try:
            element = await root.query(selector)
        except Exception as e:
            print(f"[Locator] Lookup failed for {selector!r}: {e}")
            continue
        if element is not None:
            return element
    return None


async def locate_all(root, selector):
    """All matches of one selector in document order; [] on lookup failure."""
    try:
        return await root.query_all(selector)
    except Exception as e:
        print(f"[Locator] Lookup failed for {selector!r}: {e}")
        return []


async def exists(root, selectors):
    return await locate(root, selectors) is not None
