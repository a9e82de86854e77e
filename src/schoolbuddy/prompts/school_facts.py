"""
Knowledge base injected into the assistant's system instruction.

Every uppercase string constant in this module is exposed to the prompt
templates as a Jinja2 global.
"""

SCHOOL_NAME = "ISIS G.D. ROMAGNOSI"

SCHOOL_CONTEXT = """
DATI SCUOLA (FONTE PTOF 2025-2028 ISIS G.D. ROMAGNOSI):
- Nome: ISIS G.D. ROMAGNOSI.
- Sede Centrale: Via Carducci 5, Erba (CO).
- Succursale (Sezione associata Beldosso): Via Eupilio 22, Longone al Segrino.

INDIRIZZI DI STUDIO (Cosa si studia):
1. ISTITUTO TECNICO ECONOMICO (Sede Erba):
   - Amministrazione, Finanza e Marketing (AFM).
   - Sistemi Informativi Aziendali (ITSI) - Focus su informatica gestionale.
   - Turismo - Focus su lingue e valorizzazione territorio.
2. ISTITUTO TECNICO TECNOLOGICO (Sede Erba):
   - Costruzioni, Ambiente e Territorio (CAT - ex Geometri).
   - Agraria, Agroalimentare e Agroindustria (Gestione Ambiente e Territorio).
3. ISTITUTO TECNICO TECNOLOGICO (Sede Longone al Segrino):
   - Elettronica ed Elettrotecnica (articolazione Automazione).
4. ISTITUTO PROFESSIONALE:
   - Enogastronomia e Ospitalità Alberghiera (Sede Longone/Erba).
   - Servizi per la Sanità e l'Assistenza Sociale (Nuovo indirizzo attivo dal 2024/25).

ATMOSFERA E PROGETTI:
- Ambiente: Accogliente, inclusivo, attento al "ben-essere" dello studente.
- Tecnologia: Laboratori avanzati di automazione, informatica, linguistici.
- Internazionalizzazione: Progetti Erasmus+ (stage all'estero), eTwinning.
- PCTO (Stage): Collaborazioni con aziende del territorio (Como, Lecco, Brianza).
- Inclusione: Grande attenzione a studenti con BES/DSA e stranieri, sportello psicologico attivo.
- Orario: Scansione in Trimestre + Pentamestre (Erba) o Quadrimestri (Beldosso).

FILOSOFIA:
Centralità dello studente, pensiero critico, cittadinanza attiva, dialogo costante docenti-studenti.
"""
