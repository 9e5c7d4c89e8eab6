# File location: jax-dcgraph/docs/conf.py

import os
import sys
sys.path.insert(0, os.path.abspath('../src'))

# Project information
project = 'JAX-DCGraph'
copyright = '2025, JAX-DCGraph Contributors'
author = 'JAX-DCGraph Contributors'
release = '0.1.0'

# General configuration
extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.autosummary',
    'sphinx.ext.intersphinx',
    'sphinx.ext.viewcode',
    'sphinx.ext.napoleon',
    'sphinx_rtd_theme',
]

templates_path = ['_templates']
exclude_patterns = ['_build', 'Thumbs.db', '.DS_Store']

# Options for HTML output
html_theme = 'sphinx_rtd_theme'
html_theme_options = {
    'navigation_depth': 3,
    'collapse_navigation': False,
}

# AutoDoc configuration: graph builders are documented per module
autodoc_default_options = {
    'members': True,
    'member-order': 'bysource',
    'undoc-members': False,
}
autosummary_generate = True

# Napoleon configuration (Google-style Args/Returns sections)
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_use_param = True
napoleon_use_rtype = True

intersphinx_mapping = {
    'python': ('https://docs.python.org/3/', None),
    'numpy': ('https://numpy.org/doc/stable/', None),
    'jax': ('https://jax.readthedocs.io/en/latest/', None),
}

source_suffix = {
    '.rst': None,
}
