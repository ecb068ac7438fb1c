"""Gateway entre clientes y la API de agregación de fuentes de medios."""
