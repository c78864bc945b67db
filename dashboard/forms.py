# dashboard/forms.py
from django import forms

from core.utils.phones import normalize_or_none
from rewards.services.core import validate_reward_amount


class RefereeForm(forms.Form):
    """Formulaire public : un filleul se déclare avec le code de son parrain."""
    name = forms.CharField(max_length=200)
    email = forms.EmailField()
    phone = forms.CharField(max_length=32, required=False)

    def clean_email(self):
        return self.cleaned_data["email"].strip().lower()

    def clean_phone(self):
        raw = (self.cleaned_data.get("phone") or "").strip()
        if not raw:
            return ""
        phone = normalize_or_none(raw)
        if phone is None:
            raise forms.ValidationError("Numéro invalide.")
        return phone


class BookingEventForm(forms.Form):
    """Webhook de réservation : identifie le client par email et/ou téléphone."""
    email = forms.EmailField(required=False)
    phone = forms.CharField(max_length=32, required=False)
    amount = forms.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=0)
    source = forms.CharField(max_length=40, required=False)

    def clean(self):
        data = super().clean()
        if not data.get("email") and not (data.get("phone") or "").strip():
            raise forms.ValidationError("Email ou téléphone du client requis.")
        return data


class RewardDecisionForm(forms.Form):
    given = forms.TypedChoiceField(
        choices=(("true", "Oui"), ("false", "Non")),
        coerce=lambda v: v == "true",
    )
    amount = forms.CharField(max_length=32, required=False, validators=[validate_reward_amount])
    notes = forms.CharField(required=False, widget=forms.Textarea)

    def __init__(self, data=None, *args, **kwargs):
        if data is not None:
            data = dict(data)
            given = data.get("given")
            if isinstance(given, bool):
                data["given"] = "true" if given else "false"
            elif isinstance(given, str):
                data["given"] = given.strip().lower()
        super().__init__(data, *args, **kwargs)

    def clean_amount(self):
        return self.cleaned_data.get("amount") or None

    def clean_notes(self):
        return self.cleaned_data.get("notes") or None
