"""
2D point-set registration: descriptor-aware ICP and a global rotation search
with Nelder-Mead refinement.
"""
