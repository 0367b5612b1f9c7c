"""Standard library of codewatch components and adapters."""
