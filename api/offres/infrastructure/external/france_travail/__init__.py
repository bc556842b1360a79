"""
Pipeline de sincronización one-way: France Travail (API Offres v2) -> PostgreSQL.

Este paquete está diseñado para ejecutarse como job (scheduler / CLI),
no como parte del request/response del API.

Objetivos de diseño:
- Completitud: la API corta la paginación en 1150 resultados por consulta;
  se trabaja por departamento y se bisecta la ventana de fechas de creación.
- Idempotencia: UPSERT por clave natural (provider, external_id).
- Reconciliación: lo que no se vio en una pasada completa queda is_active=false,
  nunca se borra.
- Una sola pasada a la vez (lock de proceso + advisory lock de Postgres).
"""
