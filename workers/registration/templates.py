"""
Deterministic registration texts in English, Portuguese and Spanish.

Every prompt the registration worker sends comes from this table, so a given
step always produces the same question for a given language. Unknown languages
fall back to English.
"""

from typing import Any, Dict

TEMPLATES: Dict[str, Dict[str, Any]] = {
    "en": {
        "start": "Great, let's create your account. It only takes a few steps.",
        "resume": "Welcome back! Let's continue your registration.",
        "restart": "No problem, let's start over.",
        "already_registered": "You are already registered. How else can I help you?",
        "completed": "All set, {name}! Your registration is complete.",
        "yes_no": "Please answer yes or no.",
        "consent_required": "You need to accept the terms to create an account.",
        "prompts": {
            "collect_name": "What is your full name?",
            "collect_email": "What is your email address?",
            "collect_birthdate": "What is your date of birth? (dd/mm/yyyy)",
            "collect_gender": "What is your gender? You can answer female, male, other or prefer not to say.",
            "collect_country": "Which country do you live in?",
            "collect_consent": "Do you accept the terms of use and the privacy policy? (yes/no)",
            "confirm": (
                "Please confirm your details:\n"
                "Name: {name}\n"
                "Email: {email}\n"
                "Date of birth: {birthDate}\n"
                "Gender: {gender}\n"
                "Country: {country}\n"
                "Is everything correct? (yes/no)"
            ),
        },
        "invalid": {
            "collect_name": "That doesn't look like a name.",
            "collect_email": "That email address doesn't look valid.",
            "collect_birthdate": "I couldn't read that date, or it is outside the accepted age range (18 to 120).",
            "collect_gender": "I didn't recognize that option.",
            "collect_country": "That doesn't look like a country name.",
        },
    },
    "pt": {
        "start": "Ótimo, vamos criar sua conta. São só alguns passos.",
        "resume": "Que bom ter você de volta! Vamos continuar seu cadastro.",
        "restart": "Sem problemas, vamos começar de novo.",
        "already_registered": "Você já está cadastrado. Como mais posso ajudar?",
        "completed": "Tudo pronto, {name}! Seu cadastro está completo.",
        "yes_no": "Por favor, responda sim ou não.",
        "consent_required": "Você precisa aceitar os termos para criar uma conta.",
        "prompts": {
            "collect_name": "Qual é o seu nome completo?",
            "collect_email": "Qual é o seu e-mail?",
            "collect_birthdate": "Qual é a sua data de nascimento? (dd/mm/aaaa)",
            "collect_gender": "Qual é o seu gênero? Você pode responder feminino, masculino, outro ou prefiro não dizer.",
            "collect_country": "Em qual país você mora?",
            "collect_consent": "Você aceita os termos de uso e a política de privacidade? (sim/não)",
            "confirm": (
                "Confirme seus dados:\n"
                "Nome: {name}\n"
                "E-mail: {email}\n"
                "Data de nascimento: {birthDate}\n"
                "Gênero: {gender}\n"
                "País: {country}\n"
                "Está tudo certo? (sim/não)"
            ),
        },
        "invalid": {
            "collect_name": "Isso não parece um nome.",
            "collect_email": "Esse e-mail não parece válido.",
            "collect_birthdate": "Não consegui entender essa data, ou ela está fora da faixa de idade aceita (18 a 120 anos).",
            "collect_gender": "Não reconheci essa opção.",
            "collect_country": "Isso não parece o nome de um país.",
        },
    },
    "es": {
        "start": "Genial, vamos a crear tu cuenta. Son solo unos pasos.",
        "resume": "¡Qué bueno verte de nuevo! Sigamos con tu registro.",
        "restart": "No hay problema, empecemos de nuevo.",
        "already_registered": "Ya estás registrado. ¿En qué más puedo ayudarte?",
        "completed": "¡Listo, {name}! Tu registro está completo.",
        "yes_no": "Por favor, responde sí o no.",
        "consent_required": "Necesitas aceptar los términos para crear una cuenta.",
        "prompts": {
            "collect_name": "¿Cuál es tu nombre completo?",
            "collect_email": "¿Cuál es tu correo electrónico?",
            "collect_birthdate": "¿Cuál es tu fecha de nacimiento? (dd/mm/aaaa)",
            "collect_gender": "¿Cuál es tu género? Puedes responder femenino, masculino, otro o prefiero no decir.",
            "collect_country": "¿En qué país vives?",
            "collect_consent": "¿Aceptas los términos de uso y la política de privacidad? (sí/no)",
            "confirm": (
                "Confirma tus datos:\n"
                "Nombre: {name}\n"
                "Correo: {email}\n"
                "Fecha de nacimiento: {birthDate}\n"
                "Género: {gender}\n"
                "País: {country}\n"
                "¿Está todo correcto? (sí/no)"
            ),
        },
        "invalid": {
            "collect_name": "Eso no parece un nombre.",
            "collect_email": "Ese correo no parece válido.",
            "collect_birthdate": "No pude leer esa fecha, o está fuera del rango de edad aceptado (18 a 120 años).",
            "collect_gender": "No reconocí esa opción.",
            "collect_country": "Eso no parece el nombre de un país.",
        },
    },
}


def get_templates(language_code: str) -> Dict[str, Any]:
    return TEMPLATES.get(language_code, TEMPLATES["en"])
