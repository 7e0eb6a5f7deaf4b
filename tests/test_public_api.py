from __future__ import annotations


def test_public_api_exports() -> None:
    import checkerloc as cl

    assert hasattr(cl, "locate_checkerboard")
    assert hasattr(cl, "CheckerboardLocation")
    assert hasattr(cl, "CheckerboardSpec")
    assert hasattr(cl, "CheckerboardModel")
    assert hasattr(cl, "Similarity2DTransform")
    assert hasattr(cl, "generate_checkerboard_model")
    assert hasattr(cl, "estimate_white_point")
    assert hasattr(cl, "estimate_white_point_coordinates")
