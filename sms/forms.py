# sms/forms.py
from django import forms


class ReplyForm(forms.Form):
    client_id = forms.IntegerField(min_value=1)
    message = forms.CharField(max_length=1600)

    def clean_message(self):
        message = self.cleaned_data["message"].strip()
        if not message:
            raise forms.ValidationError("Message vide.")
        return message


class InboundWebhookForm(forms.Form):
    """Champs Twilio d'un SMS entrant."""
    MessageSid = forms.CharField(max_length=64)
    From = forms.CharField(max_length=32)
    To = forms.CharField(max_length=32)
    Body = forms.CharField(required=False)


class StatusWebhookForm(forms.Form):
    """Champs Twilio d'un callback de statut."""
    MessageSid = forms.CharField(max_length=64)
    MessageStatus = forms.CharField(max_length=20)
    ErrorCode = forms.CharField(max_length=20, required=False)
    ErrorMessage = forms.CharField(max_length=500, required=False)
